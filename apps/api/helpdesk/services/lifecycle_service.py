"""Scheduled ticket sweeps: follow-ups, auto-close and SLA breaches."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import ACTIVE_TICKET_STATUSES, TicketStatus, WorkflowEventSource
from helpdesk.db.models import AgentNotification, Ticket
from helpdesk.db.types import utcnow
from helpdesk.services import ticket_service, workflow_triggers

logger = logging.getLogger(__name__)

FOLLOW_UP_BATCH_SIZE = 50
AUTO_CLOSE_BATCH_SIZE = 100
SLA_BATCH_SIZE = 100
SLA_BREACHED_TAG = "sla_breached"


def process_follow_ups(db: Session, now: datetime | None = None) -> dict:
    """Nudge the assignee of each pending ticket whose follow-up time has passed."""
    now = now or utcnow()
    tickets = (
        db.query(Ticket)
        .filter(
            Ticket.status == TicketStatus.PENDING.value,
            Ticket.follow_up_at.isnot(None),
            Ticket.follow_up_at <= now,
        )
        .order_by(Ticket.follow_up_at)
        .limit(FOLLOW_UP_BATCH_SIZE)
        .all()
    )

    notified = errors = 0
    for ticket in tickets:
        try:
            if ticket.assigned_agent_id:
                db.add(
                    AgentNotification(
                        agent_id=ticket.assigned_agent_id,
                        ticket_id=ticket.id,
                        title=f"Follow up: {ticket.subject}"[:200],
                        body="This ticket is waiting on the customer. Check in or resolve it.",
                    )
                )
                notified += 1
            ticket.follow_up_at = None
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            errors += 1
            logger.exception(
                "Follow-up failed", extra=build_log_context(ticket_id=str(ticket.id))
            )
    return {"processed": len(tickets), "notified": notified, "errors": errors}


def process_auto_close(db: Session, now: datetime | None = None) -> dict:
    """Resolve pending tickets whose auto-close time has passed."""
    now = now or utcnow()
    tickets = (
        db.query(Ticket)
        .filter(
            Ticket.status == TicketStatus.PENDING.value,
            Ticket.auto_close_at.isnot(None),
            Ticket.auto_close_at <= now,
        )
        .order_by(Ticket.auto_close_at)
        .limit(AUTO_CLOSE_BATCH_SIZE)
        .all()
    )

    closed = errors = 0
    for ticket in tickets:
        try:
            if ticket_service.change_status(
                db, ticket, TicketStatus.RESOLVED, source=WorkflowEventSource.SYSTEM
            ):
                closed += 1
        except SQLAlchemyError:
            db.rollback()
            errors += 1
            logger.exception(
                "Auto-close failed", extra=build_log_context(ticket_id=str(ticket.id))
            )
    return {"closed": closed, "errors": errors}


def run_lifecycle(db: Session, now: datetime | None = None) -> dict:
    now = now or utcnow()
    return {
        "follow_ups": process_follow_ups(db, now),
        "auto_close": process_auto_close(db, now),
    }


def process_sla_breaches(db: Session, now: datetime | None = None) -> dict:
    """
    Mark active tickets past their SLA due date and emit `sla_breach` once each.

    `sla_breached_at` is the once-only guard; the `sla_breached` tag is for
    humans and workflow conditions.
    """
    now = now or utcnow()
    tickets = (
        db.query(Ticket)
        .filter(
            Ticket.status.in_(sorted(ACTIVE_TICKET_STATUSES)),
            Ticket.sla_due_at.isnot(None),
            Ticket.sla_due_at <= now,
            Ticket.sla_breached_at.is_(None),
        )
        .order_by(Ticket.sla_due_at)
        .limit(SLA_BATCH_SIZE)
        .all()
    )

    breached = errors = 0
    for ticket in tickets:
        try:
            ticket.sla_breached_at = now
            db.commit()
            ticket_service.add_tag(db, ticket, SLA_BREACHED_TAG)
            workflow_triggers.trigger_sla_breach(db, ticket)
            breached += 1
        except SQLAlchemyError:
            db.rollback()
            errors += 1
            logger.exception(
                "SLA breach sweep failed", extra=build_log_context(ticket_id=str(ticket.id))
            )

    if breached:
        logger.info("Marked %s tickets as SLA breached", breached)
    return {"breached": breached, "errors": errors}
