"""Utility modules."""

from helpdesk.utils.normalization import (
    generate_subject,
    is_email,
    is_phone_number,
    normalize_email,
    normalize_name,
    normalize_phone,
)
from helpdesk.utils.urls import safe_url

__all__ = [
    "generate_subject",
    "is_email",
    "is_phone_number",
    "normalize_email",
    "normalize_name",
    "normalize_phone",
    "safe_url",
]
