"""Pydantic request/response schemas."""

from helpdesk.schemas.customer import CustomerMergeRequest, CustomerRead
from helpdesk.schemas.ingest import AIResponseRead, IngestRequest, IngestResult

__all__ = [
    "AIResponseRead",
    "CustomerMergeRequest",
    "CustomerRead",
    "IngestRequest",
    "IngestResult",
]
