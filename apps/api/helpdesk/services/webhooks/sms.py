"""Twilio SMS webhook handlers (inbound messages and delivery status)."""

from __future__ import annotations

import logging

from fastapi import Request, Response
from sqlalchemy.orm import Session

from helpdesk.db.enums import ChannelType, DeliveryStatus
from helpdesk.schemas.ingest import IngestRequest
from helpdesk.services import message_service
from helpdesk.services.webhooks.base import ingest_and_acknowledge

logger = logging.getLogger(__name__)

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'
MEDIA_ONLY_CONTENT = "[Media message]"

# Twilio MessageStatus → our delivery status
TWILIO_STATUS_MAP = {
    "accepted": DeliveryStatus.PENDING,
    "queued": DeliveryStatus.PENDING,
    "sending": DeliveryStatus.PENDING,
    "sent": DeliveryStatus.SENT,
    "delivered": DeliveryStatus.DELIVERED,
    "read": DeliveryStatus.DELIVERED,
    "undelivered": DeliveryStatus.FAILED,
    "failed": DeliveryStatus.FAILED,
}


def twiml_response() -> Response:
    return Response(content=EMPTY_TWIML, media_type="application/xml")


def build_ingest_request(form: dict) -> IngestRequest:
    """Map a Twilio inbound form onto the ingest envelope."""
    try:
        media_count = int(form.get("NumMedia") or 0)
    except ValueError:
        media_count = 0
    media = [
        {"url": form.get(f"MediaUrl{i}"), "content_type": form.get(f"MediaContentType{i}")}
        for i in range(media_count)
        if form.get(f"MediaUrl{i}")
    ]
    content = (form.get("Body") or "").strip()
    if not content and media:
        content = MEDIA_ONLY_CONTENT

    metadata: dict = {"to": form.get("To")}
    if media:
        metadata["media"] = media
    return IngestRequest(
        channel=ChannelType.SMS.value,
        customer_identifier=form.get("From"),
        message_content=content,
        external_id=form.get("MessageSid") or form.get("SmsSid"),
        metadata=metadata,
    )


class SmsWebhookHandler:
    """Inbound SMS. Always answers with empty TwiML so Twilio never retries or auto-replies."""

    async def handle(self, request: Request, db: Session, **kwargs) -> Response:
        form = dict(await request.form())
        await ingest_and_acknowledge(db, build_ingest_request(form))
        return twiml_response()


class SmsStatusWebhookHandler:
    """Delivery status callbacks for messages we sent."""

    async def handle(self, request: Request, db: Session, **kwargs) -> dict:
        form = dict(await request.form())
        sid = form.get("MessageSid") or form.get("SmsSid")
        status = TWILIO_STATUS_MAP.get((form.get("MessageStatus") or "").lower())
        if not sid or status is None:
            return {"ok": True, "updated": False}

        message = message_service.update_delivery_status(db, ChannelType.SMS, sid, status)
        if message is None:
            logger.info("Status callback for unknown SMS sid")
        return {"ok": True, "updated": message is not None}
