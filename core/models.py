# core/models.py
"""
Submission and outbound email data structures

Submissions are ephemeral: built from a request body, sanitized after
validation, and dropped once both derived emails are handed to the transport.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional


DEFAULT_NEWSLETTER_SOURCE = 'Website'


def _as_text(value: Any) -> str:
    """Non-string payload values are treated as absent"""
    return value if isinstance(value, str) else ''


@dataclass(frozen=True)
class ContactSubmission:
    """Contact form submission"""
    name: str
    email: str
    subject: str
    message: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> 'ContactSubmission':
        return cls(
            name=_as_text(payload.get('name')),
            email=_as_text(payload.get('email')),
            subject=_as_text(payload.get('subject')),
            message=_as_text(payload.get('message')),
        )

    def sanitized(self) -> 'ContactSubmission':
        """Trim every field and lower-case the email"""
        return replace(
            self,
            name=self.name.strip(),
            email=self.email.strip().lower(),
            subject=self.subject.strip(),
            message=self.message.strip(),
        )


@dataclass(frozen=True)
class NewsletterSubscription:
    """Newsletter subscription request"""
    email: str
    source: str = DEFAULT_NEWSLETTER_SOURCE

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> 'NewsletterSubscription':
        source = _as_text(payload.get('source')).strip()
        return cls(
            email=_as_text(payload.get('email')),
            source=source or DEFAULT_NEWSLETTER_SOURCE,
        )

    def sanitized(self) -> 'NewsletterSubscription':
        return replace(
            self,
            email=self.email.strip().lower(),
            source=self.source.strip() or DEFAULT_NEWSLETTER_SOURCE,
        )


@dataclass(frozen=True)
class OutboundEmail:
    """Fully rendered email document handed to the mail transport"""
    sender: str
    to: str
    subject: str
    html: str
    reply_to: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'from': self.sender,
            'to': self.to,
            'subject': self.subject,
            'html': self.html,
        }
        if self.reply_to:
            data['replyTo'] = self.reply_to
        return data
