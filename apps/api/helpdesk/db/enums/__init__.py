"""Enum definitions for application constants."""

from helpdesk.db.enums.jobs import JobStatus, JobType, WebhookDeliveryStatus
from helpdesk.db.enums.ticketing import (
    ACTIVE_TICKET_STATUSES,
    PRIORITY_ORDER,
    TERMINAL_TICKET_STATUSES,
    AgentStatus,
    ChannelType,
    DeliveryStatus,
    InboundLogStatus,
    PreferredChannel,
    QueueType,
    SenderType,
    TicketPriority,
    TicketStatus,
)
from helpdesk.db.enums.workflows import (
    WorkflowActionType,
    WorkflowConditionOperator,
    WorkflowEventSource,
    WorkflowExecutionStatus,
    WorkflowTriggerType,
)

__all__ = [
    "ACTIVE_TICKET_STATUSES",
    "AgentStatus",
    "ChannelType",
    "DeliveryStatus",
    "InboundLogStatus",
    "JobStatus",
    "JobType",
    "PRIORITY_ORDER",
    "PreferredChannel",
    "QueueType",
    "SenderType",
    "TERMINAL_TICKET_STATUSES",
    "TicketPriority",
    "TicketStatus",
    "WebhookDeliveryStatus",
    "WorkflowActionType",
    "WorkflowConditionOperator",
    "WorkflowEventSource",
    "WorkflowExecutionStatus",
    "WorkflowTriggerType",
]
