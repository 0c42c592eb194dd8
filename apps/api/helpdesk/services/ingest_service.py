"""
Ingest orchestrator.

One inbound message from any channel moves through:
RECEIVED → CUSTOMER_RESOLVED → TICKET_RESOLVED → MESSAGE_APPENDED →
(AI_ATTEMPTED) → DONE.

Each step raises its own typed error; steps already completed are not
rolled back. A re-delivered message (same channel + external id) returns
the original ids without re-running the AI gate or re-emitting events.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from helpdesk.core.exceptions import HelpdeskError, IngestValidationError
from helpdesk.core.structured_logging import build_log_context, mask_identifier
from helpdesk.db.enums import ChannelType, InboundLogStatus, SenderType
from helpdesk.db.models import ChannelInboundLog, Customer, Message, Ticket
from helpdesk.schemas.ingest import AIResponseRead, IngestRequest, IngestResult
from helpdesk.services import (
    ai_gate_service,
    customer_service,
    message_service,
    outbound_webhook_service,
    priority_service,
    thread_service,
    ticket_service,
    workflow_triggers,
)
from helpdesk.services.ai_provider import AIProvider
from helpdesk.services.web_search import WebSearchClient, get_web_search_client

logger = logging.getLogger(__name__)

THREAD_REF_KEYS = ("thread_ref", "in_reply_to", "references")


def _validate(request: IngestRequest) -> tuple[ChannelType, str, str, UUID | None]:
    try:
        channel = ChannelType((request.channel or "").strip().lower())
    except ValueError:
        raise IngestValidationError(f"Invalid channel: {request.channel!r}") from None

    identifier = (request.customer_identifier or "").strip()
    if not identifier:
        raise IngestValidationError("customer_identifier is required")
    content = (request.message_content or "").strip()
    if not content:
        raise IngestValidationError("message_content is required")

    ticket_id = None
    if request.ticket_id:
        try:
            ticket_id = UUID(str(request.ticket_id))
        except ValueError:
            raise IngestValidationError("ticket_id must be a UUID") from None
    return channel, identifier, content, ticket_id


def extract_thread_refs(metadata: dict) -> list[str]:
    """Collect Slack `thread_ts` / email In-Reply-To and References values."""
    refs: list[str] = []
    for key in THREAD_REF_KEYS:
        value = metadata.get(key)
        if isinstance(value, str):
            refs.extend(value.split())
        elif isinstance(value, list):
            refs.extend(str(v) for v in value if v)
    return list(dict.fromkeys(refs))


def _record_inbound(
    db: Session,
    channel: str,
    external_id: str | None,
    status: InboundLogStatus,
    *,
    customer: Customer | None = None,
    ticket: Ticket | None = None,
    message: Message | None = None,
    error: str | None = None,
) -> None:
    try:
        db.add(
            ChannelInboundLog(
                channel=channel[:20],
                external_id=external_id,
                status=status.value,
                customer_id=customer.id if customer else None,
                ticket_id=ticket.id if ticket else None,
                message_id=message.id if message else None,
                error=error,
            )
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Inbound log write failed (%s)", type(exc).__name__)


def _publish(db: Session, event: str, data: dict) -> None:
    """Best-effort outbound webhook fan-out."""
    try:
        outbound_webhook_service.dispatch_event(db, event, data)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Outbound event %s not queued (%s)", event, type(exc).__name__)


def _customer_payload(customer: Customer) -> dict:
    return {
        "id": str(customer.id),
        "name": customer.name,
        "email": customer.email,
        "phone_number": customer.phone_number,
        "preferred_channel": customer.preferred_channel,
    }


def _message_payload(message: Message) -> dict:
    return {
        "id": str(message.id),
        "ticket_id": str(message.ticket_id),
        "sender_type": message.sender_type,
        "source": message.source,
        "content": message.content,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }


async def ingest(
    db: Session,
    request: IngestRequest,
    provider: AIProvider | None = None,
    knowledge_search: ai_gate_service.KnowledgeSearch | None = None,
    web_search: WebSearchClient | None = None,
) -> IngestResult:
    """
    Process one inbound message end to end.

    Raises:
        IngestValidationError: bad channel or missing required field
        IdentityResolutionError, ThreadResolutionError, MessageAppendError:
            a pipeline step failed
    """
    metadata = dict(request.metadata or {})
    try:
        channel, identifier, content, explicit_ticket_id = _validate(request)
    except IngestValidationError as exc:
        _record_inbound(
            db, request.channel or "unknown", request.external_id, InboundLogStatus.FAILED,
            error=str(exc),
        )
        raise

    customer = ticket = None
    try:
        resolution = customer_service.resolve_customer(
            db, identifier, channel, name=request.customer_name
        )
        customer = resolution.customer
        thread = thread_service.resolve_thread(
            db,
            customer,
            channel,
            message_content=content,
            external_id=request.external_id,
            thread_refs=extract_thread_refs(metadata),
            explicit_ticket_id=explicit_ticket_id,
            subject=metadata.get("subject"),
        )
        ticket = thread.ticket
        appended = message_service.append_message(
            db,
            ticket,
            SenderType.CUSTOMER,
            content,
            channel,
            external_id=request.external_id,
            metadata=metadata,
            emit_event=False,
        )
    except HelpdeskError as exc:
        _record_inbound(
            db, channel.value, request.external_id, InboundLogStatus.FAILED,
            customer=customer, ticket=ticket, error=f"{type(exc).__name__}: {exc}",
        )
        logger.warning(
            "Ingest failed for %s (%s)",
            mask_identifier(identifier),
            type(exc).__name__,
            extra=build_log_context(channel=channel.value),
        )
        raise

    message = appended.message
    log_context = build_log_context(
        ticket_id=str(ticket.id),
        customer_id=str(customer.id),
        message_id=str(message.id),
        channel=channel.value,
    )

    if not appended.created:
        _record_inbound(
            db, channel.value, request.external_id, InboundLogStatus.DUPLICATE,
            customer=customer, ticket=message.ticket, message=message,
        )
        logger.info("Duplicate inbound message", extra=log_context)
        return IngestResult(
            ticket_id=message.ticket_id,
            message_id=message.id,
            customer_id=customer.id,
            is_new_ticket=False,
        )

    if resolution.created:
        _publish(db, "customer.created", {"customer": _customer_payload(customer)})
    if thread.is_new:
        workflow_triggers.trigger_ticket_created(db, ticket)
        _publish(db, "ticket.created", {"ticket": ticket_service.build_ticket_snapshot(ticket)})
        priority_service.schedule_classification(db, ticket, content)
    workflow_triggers.trigger_message_received(db, ticket, message)
    _publish(db, "message.created.customer", {"message": _message_payload(message)})

    ai_response = await ai_gate_service.maybe_respond(
        db,
        ticket,
        channel=channel,
        provider=provider,
        knowledge_search=knowledge_search,
        web_search=web_search if web_search is not None else get_web_search_client(),
    )
    if ai_response.sent and ai_response.message_id:
        ai_message = db.get(Message, ai_response.message_id)
        if ai_message is not None:
            _publish(db, "message.created.ai", {"message": _message_payload(ai_message)})

    _record_inbound(
        db, channel.value, request.external_id, InboundLogStatus.PROCESSED,
        customer=customer, ticket=ticket, message=message,
    )
    logger.info(
        "Ingested message (new_ticket=%s, ai_sent=%s)",
        thread.is_new,
        ai_response.sent,
        extra=log_context,
    )
    return IngestResult(
        ticket_id=ticket.id,
        message_id=message.id,
        customer_id=customer.id,
        is_new_ticket=thread.is_new,
        ai_response=AIResponseRead(sent=ai_response.sent, content=ai_response.content),
    )
