"""Message field validation, applied before anything is written."""

import re

from qubit.errors import ValidationFailed
from qubit.models.message import MAX_CONTENT_LENGTH

# E.164: leading '+', non-zero country digit, at most 15 digits
PHONE_NUMBER_PATTERN = re.compile(r"\+[1-9]\d{1,14}")


def validate_message(phone_number: str, content: str) -> None:
    """Raise ValidationFailed naming the first violated rule."""
    if not phone_number:
        raise ValidationFailed(
            "phoneNumber", "phone_number_required", "phone number is required"
        )
    if not PHONE_NUMBER_PATTERN.fullmatch(phone_number):
        raise ValidationFailed(
            "phoneNumber",
            "phone_number_format",
            "invalid phone number format (expected: +1234567890)",
        )
    if not content:
        raise ValidationFailed(
            "content", "content_required", "message content is required"
        )
    if len(content) > MAX_CONTENT_LENGTH:
        raise ValidationFailed(
            "content",
            "content_too_long",
            f"message content exceeds maximum length of {MAX_CONTENT_LENGTH} characters",
        )
