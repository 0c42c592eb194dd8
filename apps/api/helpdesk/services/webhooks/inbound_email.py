"""Inbound email webhook handler (provider-parsed JSON)."""

from __future__ import annotations

import logging
import re
from email.utils import parseaddr

from fastapi import Request
from sqlalchemy.orm import Session

from helpdesk.db.enums import ChannelType
from helpdesk.schemas.ingest import IngestRequest
from helpdesk.services.webhooks.base import ingest_or_raise, read_json

logger = logging.getLogger(__name__)

REPLY_HEADER_PATTERN = re.compile(r"^On .+wrote:\s*$")


def strip_quoted_reply(text: str) -> str:
    """Drop the quoted history a mail client appends below a reply."""
    kept = []
    for line in (text or "").splitlines():
        if REPLY_HEADER_PATTERN.match(line.strip()) or line.strip() == "-----Original Message-----":
            break
        if line.startswith(">"):
            continue
        kept.append(line)
    return "\n".join(kept).strip()


def build_ingest_request(payload: dict) -> IngestRequest:
    name, address = parseaddr(payload.get("from") or "")
    text = strip_quoted_reply(payload.get("text") or "") or (payload.get("text") or "").strip()

    references = payload.get("references") or []
    if isinstance(references, str):
        references = references.split()
    metadata = {
        "subject": payload.get("subject"),
        "in_reply_to": payload.get("in_reply_to"),
        "references": references,
    }
    return IngestRequest(
        channel=ChannelType.EMAIL.value,
        customer_identifier=address or payload.get("from"),
        customer_name=payload.get("from_name") or name or None,
        message_content=text,
        external_id=payload.get("message_id"),
        metadata={k: v for k, v in metadata.items() if v},
    )


class EmailWebhookHandler:
    async def handle(self, request: Request, db: Session, **kwargs) -> dict:
        payload = await read_json(request)
        result = await ingest_or_raise(db, build_ingest_request(payload))
        return result.model_dump(mode="json")
