"""Ingest router - the machine-facing entry point for adapters and integrations."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_db, require_internal_api_key
from helpdesk.core.exceptions import HelpdeskError, IngestValidationError
from helpdesk.schemas.ingest import IngestRequest, IngestResult
from helpdesk.services import ingest_service

router = APIRouter(tags=["Ingest"], dependencies=[Depends(require_internal_api_key)])
logger = logging.getLogger(__name__)


@router.post("/ingest", response_model=IngestResult)
async def ingest_message(
    body: IngestRequest,
    db: Session = Depends(get_db),
):
    """
    Ingest one normalized inbound message.

    - 400: invalid channel or missing identifier/content
    - 401: missing or wrong bearer token
    - 500: a pipeline step failed after validation
    """
    try:
        return await ingest_service.ingest(db, body)
    except IngestValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except HelpdeskError as exc:
        logger.error("Ingest failed (%s)", type(exc).__name__)
        raise HTTPException(status_code=500, detail="Failed to process message") from exc
