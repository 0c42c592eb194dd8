"""Chat widget message handler."""

from __future__ import annotations

from fastapi import Request
from sqlalchemy.orm import Session

from helpdesk.db.enums import ChannelType
from helpdesk.schemas.ingest import IngestRequest
from helpdesk.services.webhooks.base import ingest_or_raise, read_json


def build_ingest_request(payload: dict) -> IngestRequest:
    """
    Widget visitors are identified by email when they gave one, otherwise
    by the browser fingerprint the widget generates (`visitor_id`).
    """
    metadata = {}
    if payload.get("page_url"):
        metadata["page_url"] = payload["page_url"]
    return IngestRequest(
        channel=ChannelType.WIDGET.value,
        customer_identifier=payload.get("email") or payload.get("visitor_id"),
        customer_name=payload.get("name"),
        message_content=payload.get("message"),
        external_id=payload.get("client_message_id"),
        ticket_id=payload.get("ticket_id"),
        metadata=metadata,
    )


class WidgetWebhookHandler:
    async def handle(self, request: Request, db: Session, **kwargs) -> dict:
        payload = await read_json(request)
        result = await ingest_or_raise(db, build_ingest_request(payload))
        return result.model_dump(mode="json")
