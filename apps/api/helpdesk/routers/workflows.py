"""Workflow API router - REST endpoints for automation rules."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_db, require_internal_api_key
from helpdesk.db.enums import WorkflowTriggerType
from helpdesk.schemas.workflow import (
    ExecutionListResponse,
    ExecutionRead,
    WorkflowCreate,
    WorkflowRead,
    WorkflowTestRequest,
    WorkflowTestResponse,
    WorkflowUpdate,
)
from helpdesk.services import workflow_service

router = APIRouter(
    prefix="/workflows",
    tags=["Workflows"],
    dependencies=[Depends(require_internal_api_key)],
)


def _get_rule_or_404(db: Session, rule_id: UUID):
    rule = workflow_service.get_rule(db, rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Workflow rule not found")
    return rule


# =============================================================================
# Workflow CRUD
# =============================================================================


@router.get("", response_model=list[WorkflowRead])
def list_workflows(
    active_only: bool = False,
    trigger_event: WorkflowTriggerType | None = None,
    db: Session = Depends(get_db),
):
    """List rules in execution order (priority desc, then oldest first)."""
    rules = workflow_service.list_rules(db, active_only=active_only, trigger_event=trigger_event)
    return [WorkflowRead.model_validate(r) for r in rules]


@router.post("", response_model=WorkflowRead, status_code=201)
def create_workflow(data: WorkflowCreate, db: Session = Depends(get_db)):
    rule = workflow_service.create_rule(db, data)
    return WorkflowRead.model_validate(rule)


# Declared before /{rule_id} so "test" is not parsed as an id
@router.post("/test", response_model=WorkflowTestResponse)
def dry_run_workflow(data: WorkflowTestRequest, db: Session = Depends(get_db)):
    """Dry-run a saved or inline rule against a real or fabricated ticket. Nothing is written."""
    try:
        return workflow_service.dry_run_rule(db, data)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/{rule_id}", response_model=WorkflowRead)
def get_workflow(rule_id: UUID, db: Session = Depends(get_db)):
    return WorkflowRead.model_validate(_get_rule_or_404(db, rule_id))


@router.patch("/{rule_id}", response_model=WorkflowRead)
def update_workflow(rule_id: UUID, data: WorkflowUpdate, db: Session = Depends(get_db)):
    rule = _get_rule_or_404(db, rule_id)
    rule = workflow_service.update_rule(db, rule, data)
    return WorkflowRead.model_validate(rule)


@router.delete("/{rule_id}", status_code=204)
def delete_workflow(rule_id: UUID, db: Session = Depends(get_db)):
    rule = _get_rule_or_404(db, rule_id)
    workflow_service.delete_rule(db, rule)


# =============================================================================
# Execution history
# =============================================================================


@router.get("/{rule_id}/executions", response_model=ExecutionListResponse)
def list_workflow_executions(
    rule_id: UUID,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    _get_rule_or_404(db, rule_id)
    items, total = workflow_service.list_executions(db, rule_id, limit=limit, offset=offset)
    return ExecutionListResponse(
        items=[ExecutionRead.model_validate(e) for e in items],
        total=total,
    )
