"""Workflow rule ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from helpdesk.db.base import Base
from helpdesk.db.types import JSONType, utcnow


class WorkflowRule(Base):
    """
    Automation rule definition.

    Rules are triggered by ticket-lifecycle events and execute their actions
    when every condition matches. The engine only reads rules; run stats are
    the one exception.
    """

    __tablename__ = "workflow_rules"
    __table_args__ = (
        Index("idx_wf_rules_matching", "trigger_event", "is_active", "priority"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    trigger_event: Mapped[str] = mapped_column(String(50), nullable=False)
    conditions: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    actions: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    run_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_run_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    executions: Mapped[list["WorkflowExecution"]] = relationship(
        back_populates="rule", cascade="all, delete-orphan", passive_deletes=True
    )


class WorkflowExecution(Base):
    """Audit record of one rule evaluated against one event."""

    __tablename__ = "workflow_executions"
    __table_args__ = (
        Index("idx_wf_exec_rule", "rule_id", "executed_at"),
        Index("idx_wf_exec_ticket", "ticket_id", "executed_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workflow_rules.id", ondelete="CASCADE"), nullable=False
    )
    event_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    depth: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    event_source: Mapped[str] = mapped_column(String(20), nullable=False)
    ticket_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    trigger_event: Mapped[str] = mapped_column(String(50), nullable=False)
    event_data: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    matched_conditions: Mapped[bool] = mapped_column(Boolean, nullable=False)
    actions_executed: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    executed_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    rule: Mapped["WorkflowRule"] = relationship(back_populates="executions")
