"""Outbound webhook job handlers."""

from __future__ import annotations

from uuid import UUID


async def process_webhook_delivery(db, job) -> None:
    """POST one queued delivery to its endpoint; failures raise so the job retries."""
    from helpdesk.services import outbound_webhook_service

    delivery_id = (job.payload or {}).get("delivery_id")
    if not delivery_id:
        raise ValueError("Missing delivery_id in job payload")
    await outbound_webhook_service.deliver(db, UUID(delivery_id))
