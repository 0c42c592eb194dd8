"""Ticket service - creation, snapshots and tracked field changes."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.db.enums import (
    ChannelType,
    QueueType,
    TicketPriority,
    TicketStatus,
    WorkflowEventSource,
)
from helpdesk.db.models import Agent, Customer, Ticket
from helpdesk.db.types import utcnow

logger = logging.getLogger(__name__)

# Hours until a ticket of each priority breaches its resolution SLA
SLA_HOURS = {
    TicketPriority.URGENT.value: 1,
    TicketPriority.HIGH.value: 4,
    TicketPriority.NORMAL.value: 24,
    TicketPriority.LOW.value: 72,
}

# Hours after a ticket goes pending before its assignee is nudged
FOLLOW_UP_HOURS = {
    TicketPriority.URGENT.value: 4,
    TicketPriority.HIGH.value: 8,
    TicketPriority.NORMAL.value: 24,
    TicketPriority.LOW.value: 48,
}


def compute_sla_due_at(priority: str, start: datetime | None = None) -> datetime:
    start = start or utcnow()
    return start + timedelta(hours=SLA_HOURS.get(priority, SLA_HOURS[TicketPriority.NORMAL.value]))


def queue_type_for_channel(channel: ChannelType | str) -> QueueType:
    """AI-first for every channel unless configured as human-first."""
    if ChannelType(channel).value in settings.human_first_channels_list:
        return QueueType.HUMAN
    return QueueType.AI


def get_ticket(db: Session, ticket_id: UUID) -> Ticket | None:
    return db.query(Ticket).filter(Ticket.id == ticket_id).first()


def create_ticket(
    db: Session,
    customer: Customer,
    channel: ChannelType | str,
    subject: str,
) -> Ticket:
    """Create an open, normal-priority ticket routed by channel policy."""
    channel = ChannelType(channel)
    queue_type = queue_type_for_channel(channel)
    now = utcnow()
    ticket = Ticket(
        customer_id=customer.id,
        subject=subject[:255],
        status=TicketStatus.OPEN.value,
        priority=TicketPriority.NORMAL.value,
        queue_type=queue_type.value,
        source_channel=channel.value,
        ai_handled=queue_type == QueueType.AI,
        tags=[],
        sla_due_at=compute_sla_due_at(TicketPriority.NORMAL.value, now),
        created_at=now,
        updated_at=now,
    )
    db.add(ticket)
    db.commit()
    db.refresh(ticket)
    return ticket


def build_ticket_snapshot(ticket: Ticket) -> dict:
    """
    Flatten a ticket and its customer into the plain dict that workflow
    conditions are evaluated against.
    """
    customer = ticket.customer
    return {
        "id": str(ticket.id),
        "customer_id": str(ticket.customer_id),
        "subject": ticket.subject,
        "status": ticket.status,
        "priority": ticket.priority,
        "queue_type": ticket.queue_type,
        "source_channel": ticket.source_channel,
        "ai_handled": ticket.ai_handled,
        "ai_confidence": ticket.ai_confidence,
        "assigned_agent_id": str(ticket.assigned_agent_id) if ticket.assigned_agent_id else None,
        "tags": list(ticket.tags or []),
        "created_at": ticket.created_at.isoformat() if ticket.created_at else None,
        "updated_at": ticket.updated_at.isoformat() if ticket.updated_at else None,
        "customer": (
            {
                "id": str(customer.id),
                "name": customer.name,
                "email": customer.email,
                "phone_number": customer.phone_number,
                "preferred_channel": customer.preferred_channel,
                "preferred_language": customer.preferred_language,
            }
            if customer
            else None
        ),
    }


# =============================================================================
# Tracked changes (emit workflow events)
# =============================================================================


def change_status(
    db: Session,
    ticket: Ticket,
    new_status: TicketStatus | str,
    *,
    source: WorkflowEventSource = WorkflowEventSource.USER,
    depth: int = 0,
) -> bool:
    """Set ticket status; returns False when unchanged."""
    from helpdesk.services import workflow_triggers

    new_status = TicketStatus(new_status).value
    old_status = ticket.status
    if old_status == new_status:
        return False

    now = utcnow()
    ticket.status = new_status
    ticket.updated_at = now
    if new_status == TicketStatus.PENDING.value:
        ticket.auto_close_at = now + timedelta(days=settings.AUTO_CLOSE_DAYS)
        ticket.follow_up_at = now + timedelta(hours=FOLLOW_UP_HOURS.get(ticket.priority, 24))
    else:
        ticket.auto_close_at = None
        ticket.follow_up_at = None
    if new_status == TicketStatus.ESCALATED.value:
        ticket.queue_type = QueueType.HUMAN.value
    db.commit()

    workflow_triggers.trigger_status_changed(
        db, ticket, old_status, new_status, source=source, depth=depth
    )
    return True


def change_priority(
    db: Session,
    ticket: Ticket,
    new_priority: TicketPriority | str,
    *,
    source: WorkflowEventSource = WorkflowEventSource.USER,
    depth: int = 0,
) -> bool:
    """Set ticket priority and recompute the SLA due date; returns False when unchanged."""
    from helpdesk.services import workflow_triggers

    new_priority = TicketPriority(new_priority).value
    old_priority = ticket.priority
    if old_priority == new_priority:
        return False

    ticket.priority = new_priority
    ticket.sla_due_at = compute_sla_due_at(new_priority, ticket.created_at)
    ticket.updated_at = utcnow()
    db.commit()

    workflow_triggers.trigger_priority_changed(
        db, ticket, old_priority, new_priority, source=source, depth=depth
    )
    return True


def assign_agent(
    db: Session,
    ticket: Ticket,
    agent: Agent,
    *,
    source: WorkflowEventSource = WorkflowEventSource.USER,
    depth: int = 0,
) -> bool:
    """Assign a ticket to an agent; returns False when already assigned to them."""
    from helpdesk.services import workflow_triggers

    old_agent_id = ticket.assigned_agent_id
    if old_agent_id == agent.id:
        return False

    now = utcnow()
    ticket.assigned_agent_id = agent.id
    ticket.updated_at = now
    agent.last_assigned_at = now
    db.commit()

    workflow_triggers.trigger_ticket_assigned(
        db, ticket, old_agent_id, agent.id, source=source, depth=depth
    )
    return True


def add_tag(db: Session, ticket: Ticket, tag: str) -> bool:
    """Add a tag unless an equal tag (case-insensitive) exists."""
    tag = tag.strip()
    existing = list(ticket.tags or [])
    if not tag or tag.lower() in {t.lower() for t in existing}:
        return False
    ticket.tags = existing + [tag]
    ticket.updated_at = utcnow()
    db.commit()
    return True


def remove_tag(db: Session, ticket: Ticket, tag: str) -> bool:
    existing = list(ticket.tags or [])
    remaining = [t for t in existing if t.lower() != tag.strip().lower()]
    if len(remaining) == len(existing):
        return False
    ticket.tags = remaining
    ticket.updated_at = utcnow()
    db.commit()
    return True


def route_to_human(db: Session, ticket: Ticket) -> None:
    """Move a ticket to the human queue for agent pickup."""
    if ticket.queue_type == QueueType.HUMAN.value and not ticket.ai_handled:
        return
    ticket.queue_type = QueueType.HUMAN.value
    ticket.ai_handled = False
    ticket.updated_at = utcnow()
    db.commit()
