"""Slack Events API webhook handler."""

from __future__ import annotations

import logging

from fastapi import Request
from sqlalchemy.orm import Session

from helpdesk.db.enums import ChannelType
from helpdesk.schemas.ingest import IngestRequest
from helpdesk.services.webhooks.base import ingest_and_acknowledge, read_json

logger = logging.getLogger(__name__)

# Message subtypes that are edits, joins or bot output rather than customer text
IGNORED_SUBTYPES = frozenset(
    {"bot_message", "message_changed", "message_deleted", "channel_join", "channel_leave"}
)


def build_ingest_request(payload: dict) -> IngestRequest | None:
    """Map a Slack `event_callback` onto the ingest envelope; None when it should be ignored."""
    event = payload.get("event") or {}
    if event.get("type") != "message":
        return None
    if event.get("bot_id") or event.get("subtype") in IGNORED_SUBTYPES:
        return None
    if not event.get("user") or not (event.get("text") or "").strip():
        return None

    thread_ts = event.get("thread_ts")
    return IngestRequest(
        channel=ChannelType.SLACK.value,
        customer_identifier=event["user"],
        message_content=event["text"],
        external_id=event.get("ts"),
        metadata={
            # Replies go to the thread root; a root message starts its own thread
            "thread_ref": thread_ts or event.get("ts"),
            "slack_channel": event.get("channel"),
            "slack_team": payload.get("team_id"),
        },
    )


class SlackWebhookHandler:
    async def handle(self, request: Request, db: Session, **kwargs) -> dict:
        payload = await read_json(request)
        if payload.get("type") == "url_verification":
            return {"challenge": payload.get("challenge")}

        if payload.get("type") == "event_callback":
            ingest_request = build_ingest_request(payload)
            if ingest_request is not None:
                await ingest_and_acknowledge(db, ingest_request)
        return {"ok": True}
