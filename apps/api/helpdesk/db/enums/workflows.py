"""Workflow-related enums."""

from enum import Enum


class WorkflowTriggerType(str, Enum):
    """Ticket-lifecycle events that can trigger a workflow rule."""

    TICKET_CREATED = "ticket_created"
    STATUS_CHANGED = "status_changed"
    PRIORITY_CHANGED = "priority_changed"
    TICKET_ASSIGNED = "ticket_assigned"
    SLA_BREACH = "sla_breach"
    MESSAGE_RECEIVED = "message_received"


class WorkflowActionType(str, Enum):
    """Actions a workflow rule can execute."""

    CHANGE_STATUS = "change_status"
    CHANGE_PRIORITY = "change_priority"
    ASSIGN_AGENT = "assign_agent"
    ADD_TAG = "add_tag"
    REMOVE_TAG = "remove_tag"
    SEND_NOTIFICATION = "send_notification"
    SEND_WEBHOOK = "send_webhook"
    SEND_MESSAGE = "send_message"
    ADD_INTERNAL_NOTE = "add_internal_note"


class WorkflowConditionOperator(str, Enum):
    """Operators for workflow conditions."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN = "in"
    NOT_IN = "not_in"


class WorkflowExecutionStatus(str, Enum):
    """Execution result status."""

    SUCCESS = "success"
    PARTIAL = "partial"  # some actions succeeded
    FAILED = "failed"
    SKIPPED = "skipped"  # conditions not met


class WorkflowEventSource(str, Enum):
    """Source that triggered a workflow event."""

    USER = "user"
    SYSTEM = "system"
    WORKFLOW = "workflow"
