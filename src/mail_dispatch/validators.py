"""Email validation utilities."""

from typing import Tuple
from email_validator import validate_email, EmailNotValidError


def validate_email_address(email: str) -> Tuple[bool, str]:
    """Validate an email address.

    Args:
        email: Email address to validate

    Returns:
        Tuple of (is_valid, normalized address or error message)
    """
    try:
        valid = validate_email(email, check_deliverability=False)
        return True, valid.normalized
    except EmailNotValidError as e:
        return False, str(e)


def split_address_list(value: str) -> list:
    """Split a ``;`` or ``,`` separated address string into trimmed entries."""
    if not value:
        return []
    parts = value.replace(",", ";").split(";")
    return [part.strip() for part in parts if part.strip()]
