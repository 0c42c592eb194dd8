"""Resend email sending over httpx."""

from __future__ import annotations

import logging

import httpx

from helpdesk.core.config import settings
from helpdesk.core.structured_logging import mask_identifier

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


def is_configured() -> bool:
    return bool(settings.RESEND_API_KEY)


async def send_email(
    client: httpx.AsyncClient,
    *,
    to_email: str,
    subject: str,
    text: str,
    headers: dict[str, str] | None = None,
) -> str | None:
    """
    Send a plain-text email and return the provider message id.

    Without RESEND_API_KEY the send is logged and skipped (returns None).

    Raises:
        httpx.HTTPError: Resend rejected the request
    """
    if not is_configured():
        logger.info("[DRY RUN] Email to %s skipped", mask_identifier(to_email))
        return None

    body: dict = {
        "from": settings.EMAIL_FROM,
        "to": [to_email],
        "subject": subject,
        "text": text,
    }
    if headers:
        body["headers"] = headers
    response = await client.post(
        RESEND_API_URL,
        headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
        json=body,
    )
    response.raise_for_status()
    return response.json().get("id")
