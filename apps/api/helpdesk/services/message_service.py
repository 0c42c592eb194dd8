"""Message appender - the single writer of ticket timeline messages."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from helpdesk.core.exceptions import MessageAppendError
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import (
    ChannelType,
    DeliveryStatus,
    SenderType,
    TicketStatus,
    WorkflowEventSource,
)
from helpdesk.db.models import Message, Ticket
from helpdesk.db.types import utcnow
from helpdesk.services import ticket_service

logger = logging.getLogger(__name__)


@dataclass
class AppendResult:
    message: Message
    created: bool


def get_by_external_id(db: Session, source: str, external_id: str) -> Message | None:
    return (
        db.query(Message)
        .filter(Message.source == source, Message.external_id == external_id)
        .first()
    )


def _default_delivery_status(sender_type: str, is_internal: bool) -> str | None:
    if is_internal:
        return None
    if sender_type == SenderType.CUSTOMER.value:
        return DeliveryStatus.DELIVERED.value
    return DeliveryStatus.PENDING.value


def append_message(
    db: Session,
    ticket: Ticket,
    sender_type: SenderType | str,
    content: str,
    source: ChannelType | str,
    *,
    external_id: str | None = None,
    metadata: dict | None = None,
    delivery_status: DeliveryStatus | str | None = None,
    is_internal: bool = False,
    emit_event: bool = True,
    event_source: WorkflowEventSource = WorkflowEventSource.SYSTEM,
    depth: int = 0,
) -> AppendResult:
    """
    Append a message to a ticket timeline.

    Idempotent on (source, external_id): a re-delivered provider event
    returns the stored message with created=False. The insert and the
    ticket `updated_at` touch commit together. A customer message on a
    pending ticket reopens it (`status_changed`, auto-close cleared).

    Raises:
        MessageAppendError: insert failed (nothing was persisted)
    """
    source = ChannelType(source).value
    sender_type = SenderType(sender_type).value

    if external_id:
        existing = get_by_external_id(db, source, external_id)
        if existing:
            logger.info(
                "Duplicate message delivery ignored",
                extra=build_log_context(
                    message_id=str(existing.id), ticket_id=str(existing.ticket_id), channel=source
                ),
            )
            return AppendResult(message=existing, created=False)

    if delivery_status is None:
        status_value = _default_delivery_status(sender_type, is_internal)
    else:
        status_value = DeliveryStatus(delivery_status).value

    now = utcnow()
    message = Message(
        ticket_id=ticket.id,
        sender_type=sender_type,
        content=content,
        source=source,
        external_id=external_id,
        delivery_status=status_value,
        is_internal=is_internal,
        metadata_=dict(metadata or {}),
        created_at=now,
    )
    db.add(message)
    ticket.updated_at = now
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        # Lost a race against a concurrent delivery of the same event
        if external_id:
            existing = get_by_external_id(db, source, external_id)
            if existing:
                return AppendResult(message=existing, created=False)
        raise MessageAppendError("message could not be stored") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Message insert failed (%s)",
            type(exc).__name__,
            extra=build_log_context(ticket_id=str(ticket.id), channel=source),
        )
        raise MessageAppendError("message could not be stored") from exc

    db.refresh(message)

    if sender_type == SenderType.CUSTOMER.value and ticket.status == TicketStatus.PENDING.value:
        _reopen(db, ticket, event_source, depth)

    if emit_event and not is_internal:
        from helpdesk.services import workflow_triggers

        workflow_triggers.trigger_message_received(
            db, ticket, message, source=event_source, depth=depth
        )
    return AppendResult(message=message, created=True)


def _reopen(db: Session, ticket: Ticket, source: WorkflowEventSource, depth: int) -> None:
    """A customer reply puts a pending ticket back in the open queue."""
    try:
        ticket_service.change_status(db, ticket, TicketStatus.OPEN, source=source, depth=depth)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Reopening ticket failed (%s)",
            type(exc).__name__,
            extra=build_log_context(ticket_id=str(ticket.id)),
        )


def list_recent_messages(db: Session, ticket: Ticket, limit: int) -> list[Message]:
    """Most recent non-internal messages, returned oldest first."""
    recent = (
        db.query(Message)
        .filter(Message.ticket_id == ticket.id, Message.is_internal.is_(False))
        .order_by(Message.created_at.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(recent))


def update_delivery_status(
    db: Session,
    source: ChannelType | str,
    external_id: str,
    status: DeliveryStatus | str,
) -> Message | None:
    """Apply a provider delivery callback to the message it refers to."""
    message = get_by_external_id(db, ChannelType(source).value, external_id)
    if not message:
        return None
    message.delivery_status = DeliveryStatus(status).value
    db.commit()
    return message
