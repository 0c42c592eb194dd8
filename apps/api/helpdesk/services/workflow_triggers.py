"""Workflow triggers - hooks into core services to emit ticket-lifecycle events."""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import JobType, WorkflowEventSource, WorkflowTriggerType
from helpdesk.db.models import Message, Ticket
from helpdesk.services import job_service

logger = logging.getLogger(__name__)


def emit_event(
    db: Session,
    trigger_event: WorkflowTriggerType,
    ticket: Ticket,
    event_data: dict,
    *,
    source: WorkflowEventSource = WorkflowEventSource.SYSTEM,
    depth: int = 0,
) -> None:
    """
    Hand a lifecycle event to the workflow engine.

    Queued as a `workflow_event` job by default; with WORKFLOW_EVENTS_INLINE
    the engine runs in the caller's request instead.
    """
    from helpdesk.services.workflow_engine import MAX_DEPTH, engine

    if depth >= MAX_DEPTH:
        logger.warning(
            "Dropping %s event at max workflow depth",
            trigger_event.value,
            extra=build_log_context(ticket_id=str(ticket.id)),
        )
        return

    if settings.WORKFLOW_EVENTS_INLINE:
        try:
            engine.run(db, trigger_event, ticket, event_data, depth=depth, source=source)
        except Exception:
            db.rollback()
            logger.exception(
                "Inline workflow run failed for %s",
                trigger_event.value,
                extra=build_log_context(ticket_id=str(ticket.id)),
            )
        return

    job_service.schedule_job(
        db=db,
        job_type=JobType.WORKFLOW_EVENT,
        payload={
            "trigger_event": trigger_event.value,
            "ticket_id": str(ticket.id),
            "event_data": event_data,
            "depth": depth,
            "source": source.value,
        },
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _str_id(value: UUID | None) -> str | None:
    return str(value) if value else None


# =============================================================================
# Ticket triggers (called from ingest_service / ticket_service)
# =============================================================================


def trigger_ticket_created(
    db: Session,
    ticket: Ticket,
    *,
    source: WorkflowEventSource = WorkflowEventSource.SYSTEM,
) -> None:
    """Trigger workflows when a new ticket is created."""
    emit_event(
        db,
        WorkflowTriggerType.TICKET_CREATED,
        ticket,
        {
            "ticket_id": str(ticket.id),
            "source_channel": ticket.source_channel,
            "subject": ticket.subject,
        },
        source=source,
    )


def trigger_status_changed(
    db: Session,
    ticket: Ticket,
    old_status: str | None,
    new_status: str,
    *,
    source: WorkflowEventSource = WorkflowEventSource.USER,
    depth: int = 0,
) -> None:
    """Trigger workflows when ticket status changes."""
    if old_status == new_status:
        return
    emit_event(
        db,
        WorkflowTriggerType.STATUS_CHANGED,
        ticket,
        {"ticket_id": str(ticket.id), "old_status": old_status, "new_status": new_status},
        source=source,
        depth=depth,
    )


def trigger_priority_changed(
    db: Session,
    ticket: Ticket,
    old_priority: str | None,
    new_priority: str,
    *,
    source: WorkflowEventSource = WorkflowEventSource.USER,
    depth: int = 0,
) -> None:
    if old_priority == new_priority:
        return
    emit_event(
        db,
        WorkflowTriggerType.PRIORITY_CHANGED,
        ticket,
        {
            "ticket_id": str(ticket.id),
            "old_priority": old_priority,
            "new_priority": new_priority,
        },
        source=source,
        depth=depth,
    )


def trigger_ticket_assigned(
    db: Session,
    ticket: Ticket,
    old_agent_id: UUID | None,
    new_agent_id: UUID | None,
    *,
    source: WorkflowEventSource = WorkflowEventSource.USER,
    depth: int = 0,
) -> None:
    """Trigger workflows when a ticket is assigned."""
    emit_event(
        db,
        WorkflowTriggerType.TICKET_ASSIGNED,
        ticket,
        {
            "ticket_id": str(ticket.id),
            "old_agent_id": _str_id(old_agent_id),
            "new_agent_id": _str_id(new_agent_id),
        },
        source=source,
        depth=depth,
    )


# =============================================================================
# Message triggers (called from message_service)
# =============================================================================


def trigger_message_received(
    db: Session,
    ticket: Ticket,
    message: Message,
    *,
    source: WorkflowEventSource = WorkflowEventSource.SYSTEM,
    depth: int = 0,
) -> None:
    emit_event(
        db,
        WorkflowTriggerType.MESSAGE_RECEIVED,
        ticket,
        {
            "ticket_id": str(ticket.id),
            "message_id": str(message.id),
            "message_content": message.content,
            "message_sender_type": message.sender_type,
            "message_source": message.source,
        },
        source=source,
        depth=depth,
    )


# =============================================================================
# Sweep triggers (called from lifecycle_service)
# =============================================================================


def trigger_sla_breach(db: Session, ticket: Ticket, breach_type: str = "resolution") -> None:
    """Trigger workflows when a ticket passes its SLA due date."""
    emit_event(
        db,
        WorkflowTriggerType.SLA_BREACH,
        ticket,
        {
            "ticket_id": str(ticket.id),
            "breach_type": breach_type,
            "sla_due_at": _iso(ticket.sla_due_at),
        },
        source=WorkflowEventSource.SYSTEM,
    )
