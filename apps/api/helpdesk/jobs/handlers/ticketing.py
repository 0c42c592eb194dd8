"""Ticket job handlers: priority classification and outbound channel sends."""

from __future__ import annotations

import logging
from uuid import UUID

logger = logging.getLogger(__name__)


async def process_priority_classification(db, job) -> None:
    """Classify a new ticket's priority from its first message."""
    from helpdesk.db.models import Ticket
    from helpdesk.services import priority_service

    payload = job.payload or {}
    ticket_id = payload.get("ticket_id")
    if not ticket_id:
        raise ValueError("Missing ticket_id in job payload")

    ticket = db.get(Ticket, UUID(ticket_id))
    if ticket is None:
        logger.warning("Priority classification skipped: ticket %s not found", ticket_id)
        return
    await priority_service.apply_classification(
        db,
        ticket,
        payload.get("content") or "",
        expected_priority=payload.get("priority"),
    )


async def process_channel_delivery(db, job) -> None:
    """Send one outbound message; a raised error leaves the job for retry."""
    from helpdesk.services import channel_delivery_service

    message_id = (job.payload or {}).get("message_id")
    if not message_id:
        raise ValueError("Missing message_id in job payload")
    await channel_delivery_service.deliver_message(db, UUID(message_id))
