"""API routers."""

from helpdesk.routers.customers import router as customers_router
from helpdesk.routers.ingest import router as ingest_router
from helpdesk.routers.internal import router as internal_router
from helpdesk.routers.webhooks import router as webhooks_router
from helpdesk.routers.workflows import router as workflows_router

__all__ = [
    "customers_router",
    "ingest_router",
    "internal_router",
    "webhooks_router",
    "workflows_router",
]
