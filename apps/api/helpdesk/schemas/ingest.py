"""Pydantic schemas for the channel-agnostic ingest envelope."""

from uuid import UUID

from pydantic import BaseModel, Field


class IngestRequest(BaseModel):
    """
    Normalized inbound message from any channel adapter.

    Fields are loosely typed; channel and required-field checks happen in
    `ingest_service` so they surface as 400s with a readable reason.
    """

    channel: str | None = None
    customer_identifier: str | None = None
    customer_name: str | None = None
    message_content: str | None = None
    external_id: str | None = None
    ticket_id: str | None = None
    metadata: dict = Field(default_factory=dict)


class AIResponseRead(BaseModel):
    sent: bool
    content: str | None = None


class IngestResult(BaseModel):
    ticket_id: UUID
    message_id: UUID
    customer_id: UUID
    is_new_ticket: bool
    ai_response: AIResponseRead | None = None
