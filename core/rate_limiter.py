# core/rate_limiter.py
"""
Fixed-window rate limiting per client identity and limit kind

The window opens on the first request for a key and resets exactly
window_seconds later, independent of traffic. State lives in an injectable
WindowStore: a `limits` storage (memory:// or redis://) in production, or the
clock-driven MemoryWindowStore where time has to be controlled.
"""

import math
import time
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple

from limits import RateLimitItemPerSecond
from limits.errors import ConfigurationError
from limits.storage import Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter

logger = logging.getLogger(__name__)


CONTACT = 'contact'
NEWSLETTER = 'newsletter'


@dataclass(frozen=True)
class RateLimitPolicy:
    """Window configuration for one limit kind"""
    kind: str
    max_requests: int
    window_seconds: int
    message: str


@dataclass(frozen=True)
class RateDecision:
    """Outcome of a single admission check"""
    allowed: bool
    limit: int
    remaining: int
    retry_after: int = 0
    reset_at: float = 0.0


CONTACT_POLICY = RateLimitPolicy(
    kind=CONTACT,
    max_requests=5,
    window_seconds=15 * 60,
    message='Too many contact form submissions, please try again later.',
)

NEWSLETTER_POLICY = RateLimitPolicy(
    kind=NEWSLETTER,
    max_requests=3,
    window_seconds=60 * 60,
    message='Too many newsletter subscription attempts, please try again later.',
)

DEFAULT_POLICIES = (CONTACT_POLICY, NEWSLETTER_POLICY)


class WindowStore:
    """Counter storage; hit() must be atomic per key"""

    def hit(self, key: str, window_seconds: int, now: float, limit: int) -> Tuple[int, float]:
        """
        Count one request against the window for key

        Args:
            key: Storage key (kind + client identity)
            window_seconds: Window length, applied when a new window opens
            now: Current epoch seconds
            limit: Requests admitted per window

        Returns:
            Tuple of (count including this request, window reset epoch seconds)
        """
        raise NotImplementedError


class LimitsWindowStore(WindowStore):
    """
    Fixed windows kept by a `limits` storage (memory://, redis://, ...)

    The storage runs on its own wall clock, so `now` is not consulted;
    pair this store with a RateLimiter using time.time.
    """

    def __init__(self, storage: Storage):
        self.storage = storage
        self.limiter = FixedWindowRateLimiter(storage)

    def hit(self, key: str, window_seconds: int, now: float, limit: int) -> Tuple[int, float]:
        item = RateLimitItemPerSecond(limit, window_seconds)

        allowed = self.limiter.hit(item, key)
        stats = self.limiter.get_window_stats(item, key)

        count = limit - stats.remaining if allowed else limit + 1
        return count, float(stats.reset_time)


class MemoryWindowStore(WindowStore):
    """
    Process-local store driven by the caller's clock

    Rejected requests are not counted. Expired windows are swept once the
    earliest reset time has passed, so idle clients do not accumulate.
    """

    def __init__(self):
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._next_sweep = math.inf
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def _sweep(self, now: float) -> None:
        if now < self._next_sweep:
            return
        self._windows = {key: window for key, window in self._windows.items() if window[1] > now}
        self._next_sweep = min((reset_at for _, reset_at in self._windows.values()), default=math.inf)

    def hit(self, key: str, window_seconds: int, now: float, limit: int) -> Tuple[int, float]:
        with self._lock:
            self._sweep(now)

            count, reset_at = self._windows.get(key, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + window_seconds
                self._next_sweep = min(self._next_sweep, reset_at)
            if count >= limit:
                return count + 1, reset_at
            count += 1
            self._windows[key] = (count, reset_at)
            return count, reset_at


def create_window_store(storage_url: str) -> WindowStore:
    """
    Build a window store from a storage URL (memory:// or redis://host:port/db)

    Raises:
        ValueError: unsupported scheme
    """
    storage_url = storage_url or 'memory://'
    try:
        storage = storage_from_string(storage_url)
    except ConfigurationError as e:
        raise ValueError(f"Unsupported rate limit storage URL: {storage_url}") from e

    logger.info(f"Rate limit storage: {storage_url.split('@')[-1]}")
    return LimitsWindowStore(storage)


class RateLimiter:
    """
    Admits or rejects requests per (client identity, limit kind)
    """

    def __init__(self,
                 store: Optional[WindowStore] = None,
                 policies: Iterable[RateLimitPolicy] = DEFAULT_POLICIES,
                 clock: Callable[[], float] = time.time):
        self.store = store or MemoryWindowStore()
        self.policies = {policy.kind: policy for policy in policies}
        self.clock = clock

    def policy(self, kind: str) -> RateLimitPolicy:
        return self.policies[kind]

    def admit(self, client_id: str, kind: str) -> RateDecision:
        """
        Count this request and decide whether it may proceed

        Args:
            client_id: Client identity, usually the source IP
            kind: Limit kind (CONTACT or NEWSLETTER)

        Returns:
            RateDecision; retry_after is set when the request is rejected
        """
        policy = self.policies[kind]
        now = self.clock()

        count, reset_at = self.store.hit(
            f"{kind}:{client_id}", policy.window_seconds, now, policy.max_requests
        )

        if count > policy.max_requests:
            retry_after = max(1, math.ceil(reset_at - now))
            logger.warning(f"Rate limit exceeded for {client_id} ({kind}), retry in {retry_after}s")
            return RateDecision(
                allowed=False,
                limit=policy.max_requests,
                remaining=0,
                retry_after=retry_after,
                reset_at=reset_at,
            )

        return RateDecision(
            allowed=True,
            limit=policy.max_requests,
            remaining=policy.max_requests - count,
            reset_at=reset_at,
        )
