"""Notification job handlers."""

from __future__ import annotations

import logging
from uuid import UUID

import httpx

from helpdesk.core.structured_logging import mask_identifier

logger = logging.getLogger(__name__)

EMAIL_TIMEOUT_SECONDS = 30.0


def _coerce_uuid(raw_id: str | None) -> UUID | None:
    if not raw_id:
        return None
    try:
        return UUID(str(raw_id))
    except (TypeError, ValueError):
        logger.warning("Invalid UUID value '%s' in notification payload", raw_id)
        return None


async def process_agent_notification_email(db, job, transport: httpx.AsyncBaseTransport | None = None) -> None:
    """Email an agent the notification a workflow action created for them."""
    from helpdesk.db.models import Agent, Ticket
    from helpdesk.services import email_sender

    payload = job.payload or {}
    agent_id = _coerce_uuid(payload.get("agent_id"))
    agent = db.get(Agent, agent_id) if agent_id else None
    if agent is None or not agent.is_active:
        logger.info("Notification email skipped for job %s: agent unavailable", job.id)
        return

    title = payload.get("title") or "Notification"
    body = payload.get("body") or ""
    ticket_id = _coerce_uuid(payload.get("ticket_id"))
    ticket = db.get(Ticket, ticket_id) if ticket_id else None
    if ticket is not None:
        body = f"{body}\n\nTicket #{ticket.id}: {ticket.subject}"

    async with httpx.AsyncClient(timeout=EMAIL_TIMEOUT_SECONDS, transport=transport) as client:
        message_id = await email_sender.send_email(
            client, to_email=agent.email, subject=title, text=body
        )
    logger.info(
        "Notification email for job %s recipient=%s message_id=%s",
        job.id,
        mask_identifier(agent.email),
        message_id,
    )
