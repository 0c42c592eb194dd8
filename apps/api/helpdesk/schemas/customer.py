"""Pydantic schemas for customers."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CustomerMergeRequest(BaseModel):
    secondary_id: UUID


class CustomerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str | None = None
    phone_number: str | None = None
    name: str | None = None
    preferred_channel: str | None = None
    preferred_language: str
    metadata: dict = Field(default_factory=dict, validation_alias="metadata_")
