"""Workflow service - CRUD and dry-run for workflow rules."""

from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from helpdesk.core.exceptions import TicketNotFoundError
from helpdesk.db.enums import (
    ChannelType,
    QueueType,
    TicketPriority,
    TicketStatus,
    WorkflowTriggerType,
)
from helpdesk.db.models import WorkflowExecution, WorkflowRule
from helpdesk.db.types import utcnow
from helpdesk.schemas.workflow import (
    WorkflowCreate,
    WorkflowTestRequest,
    WorkflowUpdate,
    dump_actions,
    dump_conditions,
)
from helpdesk.services import ticket_service

# =============================================================================
# CRUD Operations
# =============================================================================


def create_rule(db: Session, data: WorkflowCreate) -> WorkflowRule:
    rule = WorkflowRule(
        name=data.name,
        description=data.description,
        trigger_event=data.trigger_event.value,
        conditions=dump_conditions(data.conditions),
        actions=dump_actions(data.actions),
        priority=data.priority,
        is_active=data.is_active,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    return rule


def update_rule(db: Session, rule: WorkflowRule, data: WorkflowUpdate) -> WorkflowRule:
    """Apply the fields present in the update."""
    if data.name is not None:
        rule.name = data.name
    if data.description is not None:
        rule.description = data.description
    if data.trigger_event is not None:
        rule.trigger_event = data.trigger_event.value
    if data.conditions is not None:
        rule.conditions = dump_conditions(data.conditions)
    if data.actions is not None:
        rule.actions = dump_actions(data.actions)
    if data.priority is not None:
        rule.priority = data.priority
    if data.is_active is not None:
        rule.is_active = data.is_active

    rule.updated_at = utcnow()
    db.commit()
    db.refresh(rule)
    return rule


def delete_rule(db: Session, rule: WorkflowRule) -> None:
    """Delete a rule and its execution history."""
    db.delete(rule)
    db.commit()


def get_rule(db: Session, rule_id: UUID) -> WorkflowRule | None:
    return db.query(WorkflowRule).filter(WorkflowRule.id == rule_id).first()


def list_rules(
    db: Session,
    active_only: bool = False,
    trigger_event: WorkflowTriggerType | None = None,
) -> list[WorkflowRule]:
    """List rules in execution order."""
    query = db.query(WorkflowRule)
    if active_only:
        query = query.filter(WorkflowRule.is_active.is_(True))
    if trigger_event:
        query = query.filter(WorkflowRule.trigger_event == trigger_event.value)
    return query.order_by(WorkflowRule.priority.desc(), WorkflowRule.created_at.asc()).all()


def list_executions(
    db: Session,
    rule_id: UUID,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[WorkflowExecution], int]:
    """Execution history for a rule, newest first."""
    base = db.query(WorkflowExecution).filter(WorkflowExecution.rule_id == rule_id)
    total = (
        db.query(func.count(WorkflowExecution.id))
        .filter(WorkflowExecution.rule_id == rule_id)
        .scalar()
        or 0
    )
    items = base.order_by(WorkflowExecution.executed_at.desc()).offset(offset).limit(limit).all()
    return items, total


# =============================================================================
# Dry run
# =============================================================================


def build_test_snapshot(test_ticket_data: dict | None = None) -> dict:
    """Fabricate a ticket snapshot, overlaid with caller-supplied fields."""
    test_ticket_data = dict(test_ticket_data or {})
    now = utcnow().isoformat()
    snapshot = {
        "id": "test-ticket",
        "customer_id": "test-customer",
        "subject": "Test ticket",
        "status": TicketStatus.OPEN.value,
        "priority": TicketPriority.NORMAL.value,
        "queue_type": QueueType.AI.value,
        "source_channel": ChannelType.EMAIL.value,
        "ai_handled": True,
        "ai_confidence": None,
        "assigned_agent_id": None,
        "tags": [],
        "created_at": now,
        "updated_at": now,
        "customer": {
            "id": "test-customer",
            "name": "Test Customer",
            "email": "customer@example.com",
            "phone_number": None,
            "preferred_channel": ChannelType.EMAIL.value,
            "preferred_language": "en",
        },
    }
    customer_overrides = test_ticket_data.pop("customer", None) or {}
    if "customer_language" in test_ticket_data:
        customer_overrides.setdefault(
            "preferred_language", test_ticket_data.pop("customer_language")
        )
    snapshot.update(test_ticket_data)
    snapshot["customer"] = {**snapshot["customer"], **customer_overrides}
    return snapshot


def dry_run_rule(db: Session, request: WorkflowTestRequest) -> dict:
    """
    Dry-run a saved or inline rule.

    Raises:
        LookupError: rule or ticket not found
    """
    from helpdesk.services.workflow_engine import engine

    if request.rule_id is not None:
        rule = get_rule(db, request.rule_id)
        if rule is None:
            raise LookupError(f"Workflow rule {request.rule_id} not found")
        rule_body = rule
    else:
        draft = request.rule
        rule_body = {
            "conditions": dump_conditions(draft.conditions),
            "actions": dump_actions(draft.actions),
            "is_active": draft.is_active,
        }

    if request.ticket_id is not None:
        ticket = ticket_service.get_ticket(db, request.ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {request.ticket_id} not found")
        snapshot = ticket_service.build_ticket_snapshot(ticket)
    else:
        snapshot = build_test_snapshot(request.test_ticket_data)

    result = engine.test_workflow_rule(rule_body, snapshot, request.event_data)
    return {**result, "ticket_snapshot": snapshot}
