"""Input validation utilities for isoenv.

The ``validate_*`` functions raise :class:`ValidationError` so that bad input
is rejected before any AWS call is made. The ``is_valid_*`` helpers are the
boolean forms used where a command only needs a yes or no answer.
"""

import re
from typing import List

from .error_handler import ValidationError

# Regular expression patterns for validation
EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
USERNAME_PATTERN = r"^[a-zA-Z0-9_.-]{1,128}$"
IAM_USERNAME_PATTERN = r"^[a-zA-Z0-9+=,.@_-]{1,64}$"
ACCOUNT_ID_PATTERN = r"^[0-9]{12}$"
REGION_PATTERN = r"^[a-z]{2}-[a-z]+-[0-9]+$"
MODEL_ID_PATTERN = r"^[a-zA-Z0-9][a-zA-Z0-9._-]+:[0-9]+$"
INFERENCE_PROFILE_ID_PATTERN = r"^[a-z0-9][a-z0-9._:-]+$"
# ISO-8601 duration such as PT1H or PT12H30M
SESSION_DURATION_PATTERN = r"^PT(?=\d)(\d+H)?(\d+M)?$"
# Identity store user IDs: a UUID, optionally prefixed with a 10 character store prefix
USER_ID_PATTERN = r"^([0-9a-f]{10}-)?[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"


def is_valid_email(value: str) -> bool:
    return bool(value) and re.match(EMAIL_PATTERN, value) is not None


def is_valid_username(value: str) -> bool:
    return bool(value) and re.match(USERNAME_PATTERN, value) is not None


def validate_email(value: str, field_name: str = "email") -> str:
    """
    Validate that a string is a valid email address.

    Args:
        value: The string to validate
        field_name: The name of the field being validated (for error messages)

    Returns:
        The validated email address

    Raises:
        ValidationError: If the value is empty or not an email address
    """
    if not value:
        raise ValidationError(f"{field_name} cannot be empty.")
    if "@" not in value or not is_valid_email(value):
        raise ValidationError(
            f"Invalid {field_name} format: {value}. "
            "Email addresses should be in the format 'user@example.com'."
        )
    return value


def validate_email_list(value: str, field_name: str = "notification emails") -> List[str]:
    """
    Split and validate a comma-separated email list.

    Blank entries are dropped. Duplicates are kept, AWS deduplicates subscribers.

    Args:
        value: Comma-separated email addresses
        field_name: The name of the field being validated (for error messages)

    Returns:
        List of validated email addresses
    """
    emails = [item.strip() for item in (value or "").split(",") if item.strip()]
    for email in emails:
        validate_email(email, field_name)
    return emails


def validate_username(value: str) -> str:
    if not is_valid_username(value):
        raise ValidationError(
            f"Invalid username format: {value}. Username must be 1-128 characters and "
            "contain only letters, digits, dots, underscores and hyphens."
        )
    return value


def validate_iam_username(value: str) -> str:
    if not value or re.match(IAM_USERNAME_PATTERN, value) is None:
        raise ValidationError(
            f"Invalid username format: {value}. Username must be 1-64 characters and "
            "contain only: a-z, A-Z, 0-9, and +=,.@_-"
        )
    return value


def validate_budget_amount(value) -> int:
    """
    Validate a monthly budget amount in whole USD.

    Args:
        value: Amount as an int or a string of digits

    Returns:
        The amount as a positive integer
    """
    text = str(value).strip()
    if not text.isdigit() or int(text) <= 0:
        raise ValidationError(f"Budget amount must be a positive integer, got: {value}")
    return int(text)


def validate_account_id(value: str) -> str:
    if not value or re.match(ACCOUNT_ID_PATTERN, value) is None:
        raise ValidationError(f"Invalid account ID: {value}. Account IDs are 12 digits.")
    return value


def validate_user_id(value: str) -> str:
    if not value or re.match(USER_ID_PATTERN, value, re.IGNORECASE) is None:
        raise ValidationError(f"Invalid user ID format: {value}")
    return value


def validate_region(value: str) -> str:
    if not value or re.match(REGION_PATTERN, value) is None:
        raise ValidationError(
            f"Invalid region format: {value}. Expected a region such as us-east-1."
        )
    return value


def validate_model_id(value: str) -> str:
    if not value or re.match(MODEL_ID_PATTERN, value) is None:
        raise ValidationError(
            f"Invalid model ID format: {value}. "
            "Expected a versioned ID such as anthropic.claude-3-5-sonnet-20240620-v1:0"
        )
    return value


def validate_inference_profile_id(value: str) -> str:
    if not value or re.match(INFERENCE_PROFILE_ID_PATTERN, value) is None:
        raise ValidationError(f"Invalid inference profile ID format: {value}")
    return value


def validate_session_duration(value: str) -> str:
    if not value or re.match(SESSION_DURATION_PATTERN, value) is None:
        raise ValidationError(
            f"Invalid session duration: {value}. Expected an ISO-8601 duration such as PT4H."
        )
    return value


def split_names(value: str) -> List[str]:
    """Split a comma-separated list of names, dropping blanks and keeping order."""
    names: List[str] = []
    for item in (value or "").split(","):
        name = item.strip()
        if name and name not in names:
            names.append(name)
    return names
