# core/validators.py
"""
Payload validation for contact and newsletter submissions

All checks run; every failure is reported together.
"""

import re
from typing import Any, List, Mapping, Optional


EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

NAME_MIN_LENGTH = 2
SUBJECT_MIN_LENGTH = 5
MESSAGE_MIN_LENGTH = 10

NAME_ERROR = 'Name must be at least 2 characters long'
EMAIL_ERROR = 'Please provide a valid email address'
SUBJECT_ERROR = 'Subject must be at least 5 characters long'
MESSAGE_ERROR = 'Message must be at least 10 characters long'


def _too_short(value: Any, min_length: int) -> bool:
    return not isinstance(value, str) or len(value.strip()) < min_length


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and EMAIL_PATTERN.fullmatch(value) is not None


def validate_contact(payload: Mapping[str, Any]) -> List[str]:
    """
    Validate a contact form payload

    Args:
        payload: Request body with name, email, subject and message

    Returns:
        List of human-readable errors, empty when the payload is valid
    """
    errors = []

    if _too_short(payload.get('name'), NAME_MIN_LENGTH):
        errors.append(NAME_ERROR)

    if not is_valid_email(payload.get('email')):
        errors.append(EMAIL_ERROR)

    if _too_short(payload.get('subject'), SUBJECT_MIN_LENGTH):
        errors.append(SUBJECT_ERROR)

    if _too_short(payload.get('message'), MESSAGE_MIN_LENGTH):
        errors.append(MESSAGE_ERROR)

    return errors


def validate_newsletter_email(email: Any) -> Optional[str]:
    """Return the validation error for a newsletter email, or None"""
    if not is_valid_email(email):
        return EMAIL_ERROR
    return None
