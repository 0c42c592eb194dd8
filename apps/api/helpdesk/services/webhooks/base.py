"""Inbound channel webhook handler interface."""

from __future__ import annotations

import json
import logging
from typing import Protocol

from fastapi import HTTPException, Request, Response
from sqlalchemy.orm import Session

from helpdesk.core.exceptions import HelpdeskError, IngestValidationError
from helpdesk.schemas.ingest import IngestRequest, IngestResult
from helpdesk.services import ingest_service

logger = logging.getLogger(__name__)

WebhookResult = dict | Response


class WebhookHandler(Protocol):
    async def handle(self, request: Request, db: Session, **kwargs) -> WebhookResult:
        """Handle a webhook request."""


async def read_json(request: Request) -> dict:
    body = await request.body()
    try:
        data = json.loads(body or b"{}")
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON") from None
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Expected a JSON object")
    return data


async def ingest_or_raise(db: Session, ingest_request: IngestRequest) -> IngestResult:
    """Run the pipeline for channels whose callers read the status code."""
    try:
        return await ingest_service.ingest(db, ingest_request)
    except IngestValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except HelpdeskError as exc:
        raise HTTPException(status_code=500, detail="Failed to process message") from exc


async def ingest_and_acknowledge(db: Session, ingest_request: IngestRequest) -> IngestResult | None:
    """Run the pipeline for providers that retry on any non-2xx; failures are only logged."""
    try:
        return await ingest_service.ingest(db, ingest_request)
    except HelpdeskError as exc:
        logger.error(
            "Inbound %s message not processed (%s)", ingest_request.channel, type(exc).__name__
        )
        return None
    except Exception:
        db.rollback()
        logger.exception("Inbound %s message failed unexpectedly", ingest_request.channel)
        return None
