"""
Outbound channel delivery for AI and agent replies.

SMS goes through Twilio, Slack through `chat.postMessage` (threaded onto
the customer's thread), email through Resend. In-app channels (widget,
portal, dashboard, api) are read from the timeline, so their messages are
marked delivered without a send. A sender with no credentials configured
runs dry: the send is logged and the message marked sent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.structured_logging import build_log_context, mask_identifier
from helpdesk.db.enums import ChannelType, DeliveryStatus, JobType, SenderType
from helpdesk.db.models import Job, Message, Ticket
from helpdesk.services import email_sender, job_service
from helpdesk.services.reply_formatting import SMS_MAX_LENGTH, split_message

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"
SEND_TIMEOUT_SECONDS = 30.0

IN_APP_CHANNELS = frozenset(
    {
        ChannelType.WIDGET.value,
        ChannelType.PORTAL.value,
        ChannelType.DASHBOARD.value,
        ChannelType.API.value,
    }
)


class ChannelDeliveryError(Exception):
    """A provider rejected the send or the recipient is unknown."""


@dataclass
class SendResult:
    provider_id: str | None
    dry_run: bool = False


def schedule_delivery(db: Session, message: Message) -> Job | None:
    """Queue a send for an outbound message; in-app messages are delivered in place."""
    if message.is_internal or message.sender_type == SenderType.CUSTOMER.value:
        return None
    if message.source in IN_APP_CHANNELS:
        message.delivery_status = DeliveryStatus.DELIVERED.value
        db.commit()
        return None
    return job_service.schedule_job_once(
        db,
        JobType.CHANNEL_DELIVERY,
        payload={"message_id": str(message.id)},
        idempotency_key=f"delivery:{message.id}",
    )


def _latest_customer_message(db: Session, ticket: Ticket, source: str) -> Message | None:
    return (
        db.query(Message)
        .filter(
            Message.ticket_id == ticket.id,
            Message.sender_type == SenderType.CUSTOMER.value,
            Message.source == source,
        )
        .order_by(Message.created_at.desc())
        .first()
    )


async def _send_sms(
    client: httpx.AsyncClient, db: Session, ticket: Ticket, message: Message
) -> SendResult:
    to = ticket.customer.phone_number or (ticket.customer.metadata_ or {}).get("sms_id")
    if not to:
        raise ChannelDeliveryError("Customer has no phone number")
    if not (settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_FROM_NUMBER):
        logger.info("[DRY RUN] SMS to %s skipped", mask_identifier(to))
        return SendResult(provider_id=None, dry_run=True)

    provider_id = None
    for part in split_message(message.content, SMS_MAX_LENGTH, separator="\n"):
        response = await client.post(
            TWILIO_API_URL.format(sid=settings.TWILIO_ACCOUNT_SID),
            auth=(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN),
            data={"To": to, "From": settings.TWILIO_FROM_NUMBER, "Body": part},
        )
        response.raise_for_status()
        # Status callbacks reference the first segment's sid
        provider_id = provider_id or response.json().get("sid")
    return SendResult(provider_id=provider_id)


async def _send_slack(
    client: httpx.AsyncClient, db: Session, ticket: Ticket, message: Message
) -> SendResult:
    inbound = _latest_customer_message(db, ticket, ChannelType.SLACK.value)
    metadata = inbound.metadata_ if inbound else {}
    slack_channel = metadata.get("slack_channel")
    if not slack_channel:
        raise ChannelDeliveryError("No Slack channel recorded for ticket")
    if not settings.SLACK_BOT_TOKEN:
        logger.info("[DRY RUN] Slack reply for ticket %s skipped", ticket.id)
        return SendResult(provider_id=None, dry_run=True)

    body = {"channel": slack_channel, "text": message.content}
    if metadata.get("thread_ref"):
        body["thread_ts"] = metadata["thread_ref"]
    response = await client.post(
        SLACK_POST_MESSAGE_URL,
        headers={"Authorization": f"Bearer {settings.SLACK_BOT_TOKEN}"},
        json=body,
    )
    response.raise_for_status()
    data = response.json()
    if not data.get("ok"):
        raise ChannelDeliveryError(f"Slack error: {data.get('error', 'unknown')}")
    return SendResult(provider_id=data.get("ts"))


async def _send_email(
    client: httpx.AsyncClient, db: Session, ticket: Ticket, message: Message
) -> SendResult:
    to = ticket.customer.email
    if not to:
        raise ChannelDeliveryError("Customer has no email address")

    headers = None
    inbound = _latest_customer_message(db, ticket, ChannelType.EMAIL.value)
    if inbound and inbound.external_id:
        headers = {"In-Reply-To": inbound.external_id, "References": inbound.external_id}
    provider_id = await email_sender.send_email(
        client,
        to_email=to,
        subject=f"Re: {ticket.subject} [Ticket #{ticket.id}]",
        text=message.content,
        headers=headers,
    )
    return SendResult(provider_id=provider_id, dry_run=not email_sender.is_configured())


_SENDERS = {
    ChannelType.SMS.value: _send_sms,
    ChannelType.SLACK.value: _send_slack,
    ChannelType.EMAIL.value: _send_email,
}


async def deliver_message(
    db: Session,
    message_id: UUID,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Message | None:
    """
    Send one outbound message over its channel and record the outcome.

    Raises:
        ChannelDeliveryError, httpx.HTTPError: send failed (message marked
            failed; the job queue retries)
    """
    message = db.get(Message, message_id)
    if message is None:
        logger.warning("Outbound message %s not found", message_id)
        return None
    if message.delivery_status in (DeliveryStatus.SENT.value, DeliveryStatus.DELIVERED.value):
        return message

    sender = _SENDERS.get(message.source)
    if sender is None:
        message.delivery_status = DeliveryStatus.DELIVERED.value
        db.commit()
        return message

    ticket = message.ticket
    log_context = build_log_context(
        ticket_id=str(ticket.id), message_id=str(message.id), channel=message.source
    )
    try:
        async with httpx.AsyncClient(timeout=SEND_TIMEOUT_SECONDS, transport=transport) as client:
            result = await sender(client, db, ticket, message)
    except (ChannelDeliveryError, httpx.HTTPError) as exc:
        message.delivery_status = DeliveryStatus.FAILED.value
        metadata = dict(message.metadata_ or {})
        metadata["delivery_error"] = f"{type(exc).__name__}: {exc}"[:500]
        message.metadata_ = metadata
        db.commit()
        logger.warning("Channel delivery failed (%s)", type(exc).__name__, extra=log_context)
        raise

    message.delivery_status = DeliveryStatus.SENT.value
    if result.provider_id and not message.external_id:
        message.external_id = result.provider_id
    if result.dry_run:
        message.metadata_ = {**(message.metadata_ or {}), "dry_run": True}
    db.commit()
    logger.info("Message sent", extra=log_context)
    return message
