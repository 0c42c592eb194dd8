"""Webhooks router - inbound channel providers."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_db
from helpdesk.core.rate_limit import WEBHOOK_LIMIT, limiter
from helpdesk.services.webhooks.registry import get_handler

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/sms")
@limiter.limit(WEBHOOK_LIMIT)
async def receive_sms(request: Request, db: Session = Depends(get_db)):
    """Twilio inbound SMS. Always answers with empty TwiML."""
    return await get_handler("sms").handle(request, db)


@router.post("/sms/status")
@limiter.limit(WEBHOOK_LIMIT)
async def receive_sms_status(request: Request, db: Session = Depends(get_db)):
    """Twilio delivery status callback."""
    return await get_handler("sms_status").handle(request, db)


@router.post("/slack")
@limiter.limit(WEBHOOK_LIMIT)
async def receive_slack_event(request: Request, db: Session = Depends(get_db)):
    """Slack Events API (url_verification and message events)."""
    return await get_handler("slack").handle(request, db)


@router.post("/email")
@limiter.limit(WEBHOOK_LIMIT)
async def receive_email(request: Request, db: Session = Depends(get_db)):
    """Parsed inbound email from the mail provider."""
    return await get_handler("email").handle(request, db)


@router.post("/widget/messages")
@limiter.limit(WEBHOOK_LIMIT)
async def receive_widget_message(request: Request, db: Session = Depends(get_db)):
    return await get_handler("widget").handle(request, db)
