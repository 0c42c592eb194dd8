"""Pydantic schemas for workflow rules."""

from datetime import datetime
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from helpdesk.db.enums import (
    TicketPriority,
    TicketStatus,
    WorkflowConditionOperator,
    WorkflowTriggerType,
)
from helpdesk.services.workflow_conditions import CONDITION_FIELDS

# Operators that compare against nothing
VALUELESS_OPERATORS = {
    WorkflowConditionOperator.IS_EMPTY,
    WorkflowConditionOperator.IS_NOT_EMPTY,
    WorkflowConditionOperator.EQUALS,
    WorkflowConditionOperator.NOT_EQUALS,
}


# =============================================================================
# Condition Schemas
# =============================================================================


class Condition(BaseModel):
    """A single condition to evaluate."""

    field: str
    operator: WorkflowConditionOperator
    value: object = None

    @field_validator("field")
    @classmethod
    def validate_field(cls, v: str) -> str:
        if v not in CONDITION_FIELDS:
            raise ValueError(f"Field '{v}' is not allowed. Allowed: {sorted(CONDITION_FIELDS)}")
        return v

    @model_validator(mode="after")
    def validate_value(self) -> "Condition":
        if self.operator not in VALUELESS_OPERATORS and self.value in (None, "", []):
            raise ValueError(f"Operator '{self.operator.value}' requires a value")
        return self


# =============================================================================
# Action Schemas (tagged by `type`)
# =============================================================================


class ChangeStatusAction(BaseModel):
    type: Literal["change_status"]
    value: TicketStatus


class ChangePriorityAction(BaseModel):
    type: Literal["change_priority"]
    value: TicketPriority


class AssignFilter(BaseModel):
    strategy: Literal["round_robin"] = "round_robin"
    team: str | None = Field(default=None, max_length=100)


class AssignAgentAction(BaseModel):
    """Assign to a specific agent (`value`) or pick one via `filter`."""

    type: Literal["assign_agent"]
    value: UUID | None = None
    filter: AssignFilter | None = None

    @model_validator(mode="after")
    def validate_target(self) -> "AssignAgentAction":
        if self.value is None and self.filter is None:
            raise ValueError("assign_agent requires an agent id or a filter")
        return self


class AddTagAction(BaseModel):
    type: Literal["add_tag"]
    value: str = Field(min_length=1, max_length=50)


class RemoveTagAction(BaseModel):
    type: Literal["remove_tag"]
    value: str = Field(min_length=1, max_length=50)


class SendNotificationAction(BaseModel):
    """Notify agents in-app; `email` also queues a notification email."""

    type: Literal["send_notification"]
    filter: Literal["all", "online", "assigned"] = "all"
    template: str | None = Field(default=None, max_length=2000)
    email: bool = False


class SendWebhookAction(BaseModel):
    """`value` is the event name sent to subscribed endpoints."""

    type: Literal["send_webhook"]
    value: str | None = Field(default=None, max_length=100)


class SendMessageAction(BaseModel):
    type: Literal["send_message"]
    template: str = Field(min_length=1, max_length=4000)


class AddInternalNoteAction(BaseModel):
    type: Literal["add_internal_note"]
    template: str = Field(min_length=1, max_length=4000)


WorkflowAction = Annotated[
    Union[
        ChangeStatusAction,
        ChangePriorityAction,
        AssignAgentAction,
        AddTagAction,
        RemoveTagAction,
        SendNotificationAction,
        SendWebhookAction,
        SendMessageAction,
        AddInternalNoteAction,
    ],
    Field(discriminator="type"),
]


def dump_conditions(conditions: list[Condition]) -> list[dict]:
    return [c.model_dump(mode="json") for c in conditions]


def dump_actions(actions: list[BaseModel]) -> list[dict]:
    return [a.model_dump(mode="json", exclude_none=True) for a in actions]


# =============================================================================
# Workflow CRUD Schemas
# =============================================================================


class WorkflowCreate(BaseModel):
    """Schema for creating a workflow rule."""

    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    trigger_event: WorkflowTriggerType
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[WorkflowAction] = Field(min_length=1)
    priority: int = Field(default=0, ge=-1000, le=1000)
    is_active: bool = True


class WorkflowUpdate(BaseModel):
    """Schema for updating a workflow rule."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    trigger_event: WorkflowTriggerType | None = None
    conditions: list[Condition] | None = None
    actions: list[WorkflowAction] | None = Field(default=None, min_length=1)
    priority: int | None = Field(default=None, ge=-1000, le=1000)
    is_active: bool | None = None


class WorkflowRead(BaseModel):
    """Schema for reading a workflow rule."""

    id: UUID
    name: str
    description: str | None
    trigger_event: str
    conditions: list[dict]
    actions: list[dict]
    priority: int
    is_active: bool
    run_count: int
    last_run_at: datetime | None
    last_error: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# =============================================================================
# Execution Schemas
# =============================================================================


class ExecutionRead(BaseModel):
    """Schema for reading a workflow execution."""

    id: UUID
    rule_id: UUID
    event_id: UUID
    depth: int
    event_source: str
    ticket_id: UUID | None
    trigger_event: str
    event_data: dict
    matched_conditions: bool
    actions_executed: list[dict]
    status: str
    error_message: str | None
    duration_ms: int | None
    executed_at: datetime

    model_config = {"from_attributes": True}


class ExecutionListResponse(BaseModel):
    items: list[ExecutionRead]
    total: int


# =============================================================================
# Dry-run Schemas
# =============================================================================


class WorkflowRuleDraft(BaseModel):
    """Unsaved rule body for the tester."""

    name: str | None = None
    trigger_event: WorkflowTriggerType | None = None
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[WorkflowAction] = Field(default_factory=list)
    is_active: bool = True


class WorkflowTestRequest(BaseModel):
    """
    Test a saved rule (`rule_id`) or an inline rule (`rule`).

    The snapshot comes from `ticket_id` when given, otherwise it is
    fabricated from defaults overlaid with `test_ticket_data`.
    """

    rule_id: UUID | None = None
    rule: WorkflowRuleDraft | None = None
    ticket_id: UUID | None = None
    test_ticket_data: dict = Field(default_factory=dict)
    event_data: dict = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_rule_source(self) -> "WorkflowTestRequest":
        if (self.rule_id is None) == (self.rule is None):
            raise ValueError("Provide exactly one of rule_id or rule")
        return self


class ConditionResultRead(BaseModel):
    field: str
    operator: str
    expected_value: object = None
    actual_value: object = None
    matched: bool


class WorkflowTestResponse(BaseModel):
    conditions_matched: bool
    condition_results: list[ConditionResultRead]
    actions_to_execute: list[dict]
    would_execute: bool
    ticket_snapshot: dict
