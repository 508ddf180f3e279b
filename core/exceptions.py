# core/exceptions.py
"""
Error taxonomy for the submission pipeline

Each error knows its HTTP status and how to render itself as a JSON body;
the Flask error handlers in app.py only have to call to_dict().
"""

from typing import Any, Dict, List, Optional


class NotificationError(Exception):
    """Base exception for submission processing"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self, include_details: bool = False) -> Dict[str, Any]:
        return {'error': self.message}


class ValidationError(NotificationError):
    """Client payload failed validation"""
    status_code = 400

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.details = list(details) if details else []

    def to_dict(self, include_details: bool = False) -> Dict[str, Any]:
        body = {'error': self.message}
        if self.details:
            body['details'] = self.details
        return body


class RateLimitError(NotificationError):
    """Client exceeded its rate window"""
    status_code = 429

    def __init__(self, message: str, retry_after: int = 0, limit: int = 0):
        super().__init__(message)
        self.retry_after = retry_after
        self.limit = limit


class MailTransportError(NotificationError):
    """The SMTP provider rejected or failed a submission"""
    status_code = 500

    def __init__(self, message: str, internal_detail: Optional[str] = None):
        super().__init__(message)
        self.internal_detail = internal_detail

    def to_dict(self, include_details: bool = False) -> Dict[str, Any]:
        body = {'error': self.message}
        if include_details and self.internal_detail:
            body['details'] = self.internal_detail
        return body
