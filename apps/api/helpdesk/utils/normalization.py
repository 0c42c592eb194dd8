"""Data normalization utilities for customer identifiers and ticket text."""

import re
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?\d{10,15}$")

SUBJECT_MAX_LENGTH = 50


def is_email(value: Optional[str]) -> bool:
    """Return True when value looks like an email address."""
    if not value:
        return False
    return bool(EMAIL_PATTERN.match(value.strip()))


def is_phone_number(value: Optional[str]) -> bool:
    """Return True when value is a bare phone number (10-15 digits, optional +)."""
    if not value:
        return False
    return bool(PHONE_PATTERN.match(re.sub(r"[\s\-().]", "", value.strip())))


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize phone to E.164 format (+15551234567).

    Accepts:
    - 10 digits: 5551234567 → +15551234567 (US default)
    - 11 digits starting with 1: 15551234567 → +15551234567
    - Already E.164: +447911123456 → +447911123456

    Returns:
        E.164 formatted phone or None if empty

    Raises:
        ValueError: If phone has fewer than 10 or more than 15 digits
    """
    if not phone:
        return None

    cleaned = phone.strip()
    digits = re.sub(r"\D", "", cleaned)

    if cleaned.startswith("+") and 10 <= len(digits) <= 15:
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if 11 <= len(digits) <= 15:
        return f"+{digits}"

    raise ValueError(f"Invalid phone number '{phone}'")


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize email to lowercase.

    Args:
        email: Raw email input

    Returns:
        Lowercased email or None if empty
    """
    if not email:
        return None
    return email.strip().lower()


def normalize_name(name: Optional[str]) -> Optional[str]:
    """Strip whitespace and collapse multiple spaces."""
    if not name:
        return None
    collapsed = " ".join(name.split())
    return collapsed or None


def generate_subject(content: str, max_length: int = SUBJECT_MAX_LENGTH) -> str:
    """
    Build a ticket subject from the first sentence of a message.

    Long sentences are cut at max_length and suffixed with "...".
    """
    first_line = " ".join((content or "").split())
    if not first_line:
        return "New conversation"
    first_sentence = re.split(r"(?<=[.!?])\s", first_line, maxsplit=1)[0]
    if len(first_sentence) <= max_length:
        return first_sentence
    return first_sentence[:max_length].rstrip() + "..."

