"""Thread resolution - map an inbound message onto an existing or new ticket."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.exceptions import ThreadResolutionError
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import TERMINAL_TICKET_STATUSES, ChannelType, TicketStatus
from helpdesk.db.models import Customer, Message, Ticket
from helpdesk.services import ticket_service
from helpdesk.utils.normalization import generate_subject

logger = logging.getLogger(__name__)

TICKET_TAG_PATTERN = re.compile(
    r"\[Ticket #([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})\]"
)
CONTINUABLE_STATUSES = (TicketStatus.OPEN.value, TicketStatus.PENDING.value)


@dataclass
class ThreadResolution:
    ticket: Ticket
    is_new: bool


def resolve_thread(
    db: Session,
    customer: Customer,
    channel: ChannelType | str,
    *,
    message_content: str = "",
    external_id: str | None = None,
    thread_refs: list[str] | None = None,
    explicit_ticket_id: UUID | None = None,
    subject: str | None = None,
) -> ThreadResolution:
    """
    Find the ticket an inbound message continues, or create one.

    Lookup order:
    1. existing message with the same (channel, external_id) - retried delivery
    2. explicit ticket id (must belong to the customer; resolved → new ticket)
    3. thread references (Slack thread_ts, email In-Reply-To/References)
    4. `[Ticket #<id>]` tag in an email subject
    5. latest open/pending ticket on a conversational channel
    6. new ticket

    Raises:
        ThreadResolutionError: explicit ticket missing or owned by another
            customer, or a persistence failure
    """
    channel = ChannelType(channel)
    try:
        ticket = _find_by_external_id(db, channel, external_id)
        if ticket is None and explicit_ticket_id:
            ticket = _resolve_explicit(db, customer, explicit_ticket_id)
        elif ticket is None:
            ticket = (
                _find_by_thread_refs(db, customer, channel, thread_refs or [])
                or _find_by_subject_tag(db, customer, channel, subject)
                or _find_continuation(db, customer, channel)
            )
        if ticket is not None:
            return ThreadResolution(ticket=ticket, is_new=False)

        ticket = ticket_service.create_ticket(
            db,
            customer,
            channel,
            subject=_subject_for_new_ticket(subject, message_content),
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Thread resolution failed (%s)",
            type(exc).__name__,
            extra=build_log_context(customer_id=str(customer.id), channel=channel.value),
        )
        raise ThreadResolutionError("ticket could not be resolved") from exc

    logger.info(
        "Created ticket %s",
        ticket.id,
        extra=build_log_context(
            ticket_id=str(ticket.id), customer_id=str(customer.id), channel=channel.value
        ),
    )
    return ThreadResolution(ticket=ticket, is_new=True)


def _subject_for_new_ticket(subject: str | None, message_content: str) -> str:
    if subject and subject.strip():
        return TICKET_TAG_PATTERN.sub("", subject).strip() or generate_subject(message_content)
    return generate_subject(message_content)


def _find_by_external_id(
    db: Session, channel: ChannelType, external_id: str | None
) -> Ticket | None:
    if not external_id:
        return None
    message = (
        db.query(Message)
        .filter(Message.source == channel.value, Message.external_id == external_id)
        .first()
    )
    return message.ticket if message else None


def _resolve_explicit(db: Session, customer: Customer, ticket_id: UUID) -> Ticket | None:
    ticket = ticket_service.get_ticket(db, ticket_id)
    if ticket is None or ticket.customer_id != customer.id:
        raise ThreadResolutionError(f"Ticket {ticket_id} not found for customer")
    if ticket.status in TERMINAL_TICKET_STATUSES:
        return None
    return ticket


def _find_by_thread_refs(
    db: Session, customer: Customer, channel: ChannelType, thread_refs: list[str]
) -> Ticket | None:
    refs = [ref for ref in dict.fromkeys(thread_refs) if ref]
    if not refs:
        return None
    message = (
        db.query(Message)
        .join(Ticket, Message.ticket_id == Ticket.id)
        .filter(
            Message.source == channel.value,
            Ticket.customer_id == customer.id,
            Ticket.status.notin_(sorted(TERMINAL_TICKET_STATUSES)),
            or_(
                Message.external_id.in_(refs),
                Message.metadata_["thread_ref"].as_string().in_(refs),
            ),
        )
        .order_by(Message.created_at.desc())
        .first()
    )
    return message.ticket if message else None


def _find_by_subject_tag(
    db: Session, customer: Customer, channel: ChannelType, subject: str | None
) -> Ticket | None:
    if channel != ChannelType.EMAIL or not subject:
        return None
    match = TICKET_TAG_PATTERN.search(subject)
    if not match:
        return None
    ticket = ticket_service.get_ticket(db, UUID(match.group(1)))
    if (
        ticket is None
        or ticket.customer_id != customer.id
        or ticket.status in TERMINAL_TICKET_STATUSES
    ):
        return None
    return ticket


def _find_continuation(db: Session, customer: Customer, channel: ChannelType) -> Ticket | None:
    if channel.value not in settings.continuation_channels_list:
        return None
    return (
        db.query(Ticket)
        .filter(
            Ticket.customer_id == customer.id,
            Ticket.source_channel == channel.value,
            Ticket.status.in_(CONTINUABLE_STATUSES),
        )
        .order_by(Ticket.updated_at.desc())
        .first()
    )
