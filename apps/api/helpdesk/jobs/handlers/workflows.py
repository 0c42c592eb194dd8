"""Workflow-related job handlers."""

from __future__ import annotations

import logging
from uuid import UUID

logger = logging.getLogger(__name__)


async def process_workflow_event(db, job) -> None:
    """
    Process a WORKFLOW_EVENT job - run the engine for one lifecycle event.

    Payload:
        - trigger_event: WorkflowTriggerType value
        - ticket_id: Ticket the event concerns
        - event_data: Event-specific fields (old/new status, message id, ...)
        - depth: Nesting depth of the emitting action (0 for user/system events)
        - source: WorkflowEventSource value
    """
    from helpdesk.db.models import Ticket
    from helpdesk.services.workflow_engine import engine

    payload = job.payload or {}
    ticket_id = payload.get("ticket_id")
    trigger_event = payload.get("trigger_event")
    if not ticket_id or not trigger_event:
        raise ValueError("Missing ticket_id or trigger_event in job payload")

    ticket = db.get(Ticket, UUID(ticket_id))
    if ticket is None:
        logger.warning("Workflow event %s skipped: ticket %s not found", trigger_event, ticket_id)
        return

    report = engine.run(
        db,
        trigger_event,
        ticket,
        payload.get("event_data") or {},
        event_id=job.id,
        depth=int(payload.get("depth", 0)),
        source=payload.get("source", "system"),
    )
    logger.info(
        "Workflow event %s: %s rules evaluated, %s matched",
        trigger_event,
        report.rules_evaluated,
        report.rules_matched,
    )
