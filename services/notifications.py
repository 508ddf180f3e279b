# services/notifications.py
"""
Notification Dispatcher
Runs one submission through rate check, validation, sanitization, rendering
and the joined pair of SMTP submissions, and reports a single outcome.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional, Tuple

from config.settings import Settings
from core.exceptions import MailTransportError, RateLimitError, ValidationError
from core.models import ContactSubmission, NewsletterSubscription, OutboundEmail
from core.rate_limiter import CONTACT, NEWSLETTER, RateDecision, RateLimiter
from core.template_engine import NotificationTemplateEngine
from core.validators import validate_contact, validate_newsletter_email
from services.mailer import MailTransport

logger = logging.getLogger(__name__)


CONTACT_SUCCESS_MESSAGE = "Message sent successfully! We'll get back to you within 24 hours."
NEWSLETTER_SUCCESS_MESSAGE = 'Successfully subscribed to newsletter! Check your email for confirmation.'
CONTACT_FAILURE_MESSAGE = 'Failed to send message. Please try again later.'
NEWSLETTER_FAILURE_MESSAGE = 'Failed to subscribe to newsletter. Please try again later.'


@dataclass
class DispatchResult:
    """Successful submission outcome"""
    success: bool
    message: str
    emails: List[OutboundEmail] = field(default_factory=list)
    rate: Optional[RateDecision] = None

    def to_dict(self) -> dict:
        return {'success': self.success, 'message': self.message}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationDispatcher:
    """
    Orchestrates contact and newsletter submissions
    """

    def __init__(self,
                 settings: Settings,
                 renderer: NotificationTemplateEngine,
                 transport: MailTransport,
                 rate_limiter: RateLimiter,
                 clock: Callable[[], datetime] = _utcnow):
        self.settings = settings
        self.renderer = renderer
        self.transport = transport
        self.rate_limiter = rate_limiter
        self.clock = clock

    def _check_rate(self, client_id: str, kind: str) -> RateDecision:
        decision = self.rate_limiter.admit(client_id, kind)
        if not decision.allowed:
            policy = self.rate_limiter.policy(kind)
            raise RateLimitError(policy.message, retry_after=decision.retry_after, limit=decision.limit)
        return decision

    def submit_contact(self, client_id: str, payload: Mapping[str, Any]) -> DispatchResult:
        """
        Process a contact form submission

        Args:
            client_id: Client identity used for rate limiting
            payload: Parsed request body

        Returns:
            DispatchResult on success

        Raises:
            RateLimitError: contact window exhausted for client_id
            ValidationError: payload failed one or more rules
            MailTransportError: either of the two emails failed
        """
        decision = self._check_rate(client_id, CONTACT)

        errors = validate_contact(payload)
        if errors:
            logger.info(f"Contact submission from {client_id} rejected: {len(errors)} validation error(s)")
            raise ValidationError('Validation failed', details=errors)

        submission = ContactSubmission.from_payload(payload).sanitized()

        now = self.clock()
        emails = (
            self.renderer.render_contact_admin(submission, now),
            self.renderer.render_contact_acknowledgment(submission, now),
        )

        self._deliver(emails, CONTACT_FAILURE_MESSAGE)

        logger.info(f"Email sent successfully from {submission.email} - Subject: {submission.subject}")
        return DispatchResult(
            success=True,
            message=CONTACT_SUCCESS_MESSAGE,
            emails=list(emails),
            rate=decision,
        )

    def subscribe_newsletter(self, client_id: str, payload: Mapping[str, Any]) -> DispatchResult:
        """
        Process a newsletter subscription

        Raises:
            RateLimitError, ValidationError, MailTransportError
        """
        decision = self._check_rate(client_id, NEWSLETTER)

        error = validate_newsletter_email(payload.get('email'))
        if error:
            logger.info(f"Newsletter subscription from {client_id} rejected: {error}")
            raise ValidationError(error)

        subscription = NewsletterSubscription.from_payload(payload).sanitized()

        now = self.clock()
        emails = (
            self.renderer.render_newsletter_admin(subscription, now),
            self.renderer.render_newsletter_welcome(subscription, now),
        )

        self._deliver(emails, NEWSLETTER_FAILURE_MESSAGE)

        logger.info(f"Newsletter subscription processed for {subscription.email}")
        return DispatchResult(
            success=True,
            message=NEWSLETTER_SUCCESS_MESSAGE,
            emails=list(emails),
            rate=decision,
        )

    def _deliver(self, emails: Tuple[OutboundEmail, ...], failure_message: str) -> None:
        """
        Submit all emails concurrently; succeed only if every submission does
        """
        try:
            results = asyncio.run(self._send_all(emails))
        except asyncio.TimeoutError as e:
            logger.error(f"Mail submission timed out after {self.settings.send_timeout}s")
            raise MailTransportError(failure_message, internal_detail='Mail submission timed out') from e

        failures = [(email, result) for email, result in zip(emails, results)
                    if isinstance(result, BaseException)]
        if not failures:
            return

        for email, exc in failures:
            logger.error(f"Error sending email to {email.to} ({email.subject}): {exc}")

        _, first_error = failures[0]
        detail = getattr(first_error, 'internal_detail', None) or str(first_error)
        raise MailTransportError(failure_message, internal_detail=detail) from first_error

    async def _send_all(self, emails: Tuple[OutboundEmail, ...]) -> list:
        # return_exceptions keeps one failure from cancelling the other send
        joined = asyncio.gather(
            *(self.transport.send(email) for email in emails),
            return_exceptions=True,
        )
        if self.settings.send_timeout:
            return await asyncio.wait_for(joined, timeout=self.settings.send_timeout)
        return await joined
