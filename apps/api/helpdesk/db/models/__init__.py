"""SQLAlchemy ORM models."""

from helpdesk.db.models.jobs import Job
from helpdesk.db.models.ticketing import (
    Agent,
    AgentNotification,
    ChannelInboundLog,
    Customer,
    KnowledgeArticle,
    Message,
    Ticket,
)
from helpdesk.db.models.webhooks import WebhookDelivery, WebhookEndpoint
from helpdesk.db.models.workflows import WorkflowExecution, WorkflowRule

__all__ = [
    "Agent",
    "AgentNotification",
    "ChannelInboundLog",
    "Customer",
    "Job",
    "KnowledgeArticle",
    "Message",
    "Ticket",
    "WebhookDelivery",
    "WebhookEndpoint",
    "WorkflowExecution",
    "WorkflowRule",
]
