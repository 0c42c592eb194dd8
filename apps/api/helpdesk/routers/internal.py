"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
Call from external cron (Render/Railway/GH Actions).
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_db, verify_internal_secret
from helpdesk.services import lifecycle_service

router = APIRouter(
    prefix="/internal/scheduled",
    tags=["internal"],
    dependencies=[Depends(verify_internal_secret)],
)


class FollowUpSweepResponse(BaseModel):
    processed: int
    notified: int
    errors: int


class AutoCloseSweepResponse(BaseModel):
    closed: int
    errors: int


class LifecycleSweepResponse(BaseModel):
    follow_ups: FollowUpSweepResponse
    auto_close: AutoCloseSweepResponse


class SlaSweepResponse(BaseModel):
    breached: int
    errors: int


@router.post("/lifecycle", response_model=LifecycleSweepResponse)
def run_lifecycle_sweep(db: Session = Depends(get_db)):
    """
    Pending-ticket sweep.

    - Follow-ups: notify the assignee once follow_up_at passes
    - Auto-close: resolve tickets once auto_close_at passes
    """
    return lifecycle_service.run_lifecycle(db)


@router.post("/sla-breach", response_model=SlaSweepResponse)
def run_sla_breach_sweep(db: Session = Depends(get_db)):
    """Mark overdue active tickets as breached and fire `sla_breach` workflows once each."""
    return lifecycle_service.process_sla_breaches(db)
