"""
Pytest configuration and fixtures for all tests.
"""

import asyncio
import os
import sys
import pytest

# Add the repository root to the Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app import create_app
from config.settings import Settings
from core.exceptions import MailTransportError
from core.rate_limiter import MemoryWindowStore, RateLimiter
from core.template_engine import NotificationTemplateEngine
from services.mailer import MailTransport
from services.notifications import NotificationDispatcher


class FakeClock:
    """Controllable epoch-seconds clock for rate limiting tests"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport(MailTransport):
    """Records every submission; fails for recipients listed in fail_for"""

    def __init__(self):
        self.sent = []
        self.attempted = []
        self.fail_for = set()
        self.delay = 0.0
        self.ready = True
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, email):
        self.attempted.append(email)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay or 0.01)
            if email.to in self.fail_for:
                raise MailTransportError('Failed to send email', internal_detail=f'550 rejected {email.to}')
            self.sent.append(email)
            return {'response': '250 OK', 'message_id': f'<{len(self.sent)}@test>'}
        finally:
            self.in_flight -= 1

    async def verify(self):
        return self.ready


@pytest.fixture
def settings():
    return Settings(
        mail_user='notifications@quantumdatasynergy.com',
        mail_password='app-password',
        admin_email='admin@quantumdatasynergy.com',
        inline_css=False,
        verify_on_startup=False,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rate_limiter(clock):
    return RateLimiter(MemoryWindowStore(), clock=clock)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def renderer(settings):
    return NotificationTemplateEngine(settings)


@pytest.fixture
def dispatcher(settings, renderer, transport, rate_limiter):
    return NotificationDispatcher(
        settings=settings,
        renderer=renderer,
        transport=transport,
        rate_limiter=rate_limiter,
    )


@pytest.fixture
def app(settings, transport, rate_limiter):
    return create_app(settings, transport=transport, rate_limiter=rate_limiter)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def contact_payload():
    return {
        'name': 'Al',
        'email': 'al@x.com',
        'subject': 'Hello there',
        'message': 'This is a test message.',
    }
