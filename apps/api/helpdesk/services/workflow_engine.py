"""Workflow engine - runs rules for ticket events with loop protection and per-action isolation."""

from __future__ import annotations

import logging
import re
import time
import uuid as uuid_module
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import case
from sqlalchemy.orm import Session

from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import (
    AgentStatus,
    ChannelType,
    JobType,
    SenderType,
    WorkflowActionType,
    WorkflowEventSource,
    WorkflowExecutionStatus,
    WorkflowTriggerType,
)
from helpdesk.db.models import (
    Agent,
    AgentNotification,
    Ticket,
    WorkflowExecution,
    WorkflowRule,
)
from helpdesk.db.types import utcnow
from helpdesk.services import job_service, ticket_service
from helpdesk.services.workflow_conditions import evaluate_conditions

logger = logging.getLogger(__name__)

# Maximum recursion depth for workflow-triggered events
MAX_DEPTH = 3

DEFAULT_WEBHOOK_EVENT = "workflow.triggered"
TEMPLATE_PATTERN = re.compile(r"\{\{\s*(ticket|customer|event)\.(\w+)\s*\}\}")


def render_template(template: str, snapshot: Mapping, event_data: Mapping | None = None) -> str:
    """Substitute `{{ticket.x}}`, `{{customer.x}}` and `{{event.x}}` placeholders."""
    scopes = {
        "ticket": snapshot,
        "customer": snapshot.get("customer") or {},
        "event": event_data or {},
    }

    def _replace(match: re.Match) -> str:
        value = scopes[match.group(1)].get(match.group(2))
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return ", ".join(str(v) for v in value)
        return str(value)

    return TEMPLATE_PATTERN.sub(_replace, template or "")


@dataclass
class RuleResult:
    rule_id: str
    rule_name: str
    matched: bool
    condition_results: list[dict] = field(default_factory=list)
    actions: list[dict] = field(default_factory=list)
    error: str | None = None


@dataclass
class ExecutionReport:
    trigger_event: str
    ticket_id: str | None
    event_id: str
    rules_evaluated: int = 0
    rules_matched: int = 0
    results: list[RuleResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class WorkflowEngine:
    """
    Core workflow execution engine.

    Loads active rules for an event, evaluates their conditions against a
    snapshot of the ticket taken when the event is processed, and executes
    the planned actions of every matching rule. Action failures are
    recorded, never raised.
    """

    # =========================================================================
    # Live execution
    # =========================================================================

    def run(
        self,
        db: Session,
        trigger_event: WorkflowTriggerType | str,
        ticket: Ticket,
        event_data: dict | None = None,
        *,
        event_id: UUID | None = None,
        depth: int = 0,
        source: WorkflowEventSource = WorkflowEventSource.SYSTEM,
    ) -> ExecutionReport:
        trigger_event = WorkflowTriggerType(trigger_event)
        source = WorkflowEventSource(source)
        event_data = dict(event_data or {})
        event_id = event_id or uuid_module.uuid4()
        report = ExecutionReport(
            trigger_event=trigger_event.value,
            ticket_id=str(ticket.id),
            event_id=str(event_id),
        )

        # Loop protection
        if depth >= MAX_DEPTH:
            logger.warning("Max workflow depth (%s) reached for event %s", MAX_DEPTH, event_id)
            return report

        # Ignore workflow-triggered events at depth > 1
        if source == WorkflowEventSource.WORKFLOW and depth > 1:
            logger.debug("Ignoring nested workflow-triggered event at depth %s", depth)
            return report

        snapshot = ticket_service.build_ticket_snapshot(ticket)
        rules = self.get_active_rules(db, trigger_event)
        report.rules_evaluated = len(rules)

        for rule in rules:
            result = self._execute_rule(
                db,
                rule=rule,
                ticket=ticket,
                snapshot=snapshot,
                trigger_event=trigger_event,
                event_data=event_data,
                event_id=event_id,
                depth=depth,
                source=source,
            )
            report.results.append(result)
            if result.matched:
                report.rules_matched += 1
            if result.error:
                report.errors.append(f"{result.rule_name}: {result.error}")
            for action in result.actions:
                if not action.get("success"):
                    report.errors.append(f"{result.rule_name}/{action.get('type')}: {action.get('error')}")

        return report

    def get_active_rules(
        self, db: Session, trigger_event: WorkflowTriggerType
    ) -> list[WorkflowRule]:
        """Active rules for a trigger, highest priority first, oldest first on ties."""
        return (
            db.query(WorkflowRule)
            .filter(
                WorkflowRule.trigger_event == trigger_event.value,
                WorkflowRule.is_active.is_(True),
            )
            .order_by(
                WorkflowRule.priority.desc(),
                WorkflowRule.created_at.asc(),
                WorkflowRule.id.asc(),
            )
            .all()
        )

    def _execute_rule(
        self,
        db: Session,
        *,
        rule: WorkflowRule,
        ticket: Ticket,
        snapshot: dict,
        trigger_event: WorkflowTriggerType,
        event_data: dict,
        event_id: UUID,
        depth: int,
        source: WorkflowEventSource,
    ) -> RuleResult:
        """Evaluate and execute a single rule and log the result."""
        start_time = time.time()
        rule_id = rule.id
        result = RuleResult(rule_id=str(rule_id), rule_name=rule.name, matched=False)

        try:
            matched, condition_results = evaluate_conditions(rule.conditions, snapshot, event_data)
            result.matched = matched
            result.condition_results = [c.to_dict() for c in condition_results]
            planned = self.plan_rule(rule.actions, snapshot, event_data) if matched else []
        except Exception as e:
            logger.exception(
                "Workflow rule evaluation failed", extra=build_log_context(rule_id=str(rule_id))
            )
            result.error = str(e)
            planned = []

        for action in planned:
            result.actions.append(
                self._execute_action(db, action, ticket, event_id=event_id, depth=depth)
            )

        failures = [a for a in result.actions if not a.get("success")]
        if result.error:
            status = WorkflowExecutionStatus.FAILED
        elif not result.matched:
            status = WorkflowExecutionStatus.SKIPPED
        elif not failures:
            status = WorkflowExecutionStatus.SUCCESS
        elif len(failures) < len(result.actions):
            status = WorkflowExecutionStatus.PARTIAL
        else:
            status = WorkflowExecutionStatus.FAILED
        error_message = result.error or (failures[-1].get("error") if failures else None)

        # Reload in case an action failure rolled the session back
        rule = db.get(WorkflowRule, rule_id)
        if rule is not None and result.matched:
            rule.run_count = (rule.run_count or 0) + 1
            rule.last_run_at = utcnow()
            rule.last_error = error_message

        execution = WorkflowExecution(
            rule_id=rule_id,
            event_id=event_id,
            depth=depth,
            event_source=source.value,
            ticket_id=ticket.id,
            trigger_event=trigger_event.value,
            event_data=event_data,
            matched_conditions=result.matched,
            actions_executed=result.actions,
            status=status.value,
            error_message=error_message,
            duration_ms=int((time.time() - start_time) * 1000),
        )
        try:
            db.add(execution)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.exception(
                "Workflow execution log not saved",
                extra=build_log_context(rule_id=str(rule_id), ticket_id=str(ticket.id)),
            )
            result.error = f"execution log not saved: {type(e).__name__}"

        if result.matched:
            logger.info(
                "Workflow rule %s executed (%s)",
                result.rule_name,
                status.value,
                extra=build_log_context(rule_id=str(rule_id), ticket_id=str(ticket.id)),
            )
        return result

    # =========================================================================
    # Planning (shared with dry-run)
    # =========================================================================

    def plan_rule(
        self,
        actions: list[Mapping] | None,
        snapshot: Mapping,
        event_data: Mapping | None = None,
    ) -> list[dict]:
        """
        Resolve a rule's stored actions into concrete instructions.

        Templates are rendered against the snapshot; agent selection for
        round-robin assignment happens at execution time.
        """
        return [self._plan_action(action, snapshot, event_data) for action in actions or []]

    def _plan_action(
        self, action: Mapping, snapshot: Mapping, event_data: Mapping | None
    ) -> dict:
        action_type = action.get("type")
        planned: dict[str, Any] = {"type": action_type}

        if action_type in (
            WorkflowActionType.CHANGE_STATUS.value,
            WorkflowActionType.CHANGE_PRIORITY.value,
            WorkflowActionType.ADD_TAG.value,
            WorkflowActionType.REMOVE_TAG.value,
        ):
            value = action.get("value")
            planned["value"] = value.strip() if isinstance(value, str) else value

        elif action_type == WorkflowActionType.ASSIGN_AGENT.value:
            filter_ = action.get("filter") or {}
            if action.get("value"):
                planned["agent_id"] = str(action["value"])
            else:
                planned["strategy"] = filter_.get("strategy", "round_robin")
                planned["team"] = filter_.get("team")

        elif action_type == WorkflowActionType.SEND_NOTIFICATION.value:
            default = f"Workflow notification for ticket: {snapshot.get('subject')}"
            planned["filter"] = action.get("filter") or "all"
            planned["title"] = f"Workflow Alert: {snapshot.get('subject')}"
            planned["message"] = render_template(action.get("template") or default, snapshot, event_data)
            planned["email"] = bool(action.get("email"))

        elif action_type == WorkflowActionType.SEND_WEBHOOK.value:
            planned["event"] = action.get("value") or DEFAULT_WEBHOOK_EVENT

        elif action_type in (
            WorkflowActionType.SEND_MESSAGE.value,
            WorkflowActionType.ADD_INTERNAL_NOTE.value,
        ):
            template = action.get("template") or action.get("value") or ""
            planned["content"] = render_template(template, snapshot, event_data)
            if action_type == WorkflowActionType.SEND_MESSAGE.value:
                planned["channel"] = snapshot.get("source_channel")

        return planned

    # =========================================================================
    # Dry run
    # =========================================================================

    def test_workflow_rule(
        self,
        rule: WorkflowRule | Mapping,
        snapshot: Mapping,
        event_data: Mapping | None = None,
    ) -> dict:
        """
        Evaluate a rule against a snapshot without side effects.

        Uses the same evaluator and planner as `run`.
        """
        if isinstance(rule, WorkflowRule):
            conditions, actions, is_active = rule.conditions, rule.actions, rule.is_active
        else:
            conditions = rule.get("conditions") or []
            actions = rule.get("actions") or []
            is_active = rule.get("is_active", True)

        matched, results = evaluate_conditions(conditions, snapshot, event_data)
        planned = self.plan_rule(actions, snapshot, event_data) if matched else []
        return {
            "conditions_matched": matched,
            "condition_results": [r.to_dict() for r in results],
            "actions_to_execute": planned,
            "would_execute": bool(matched and is_active and planned),
        }

    # =========================================================================
    # Action Executors
    # =========================================================================

    def _execute_action(
        self,
        db: Session,
        action: dict,
        ticket: Ticket,
        *,
        event_id: UUID,
        depth: int,
    ) -> dict:
        """Execute a single planned action; failures are returned, not raised."""
        action_type = action.get("type")
        handlers = {
            WorkflowActionType.CHANGE_STATUS.value: self._action_change_status,
            WorkflowActionType.CHANGE_PRIORITY.value: self._action_change_priority,
            WorkflowActionType.ASSIGN_AGENT.value: self._action_assign_agent,
            WorkflowActionType.ADD_TAG.value: self._action_add_tag,
            WorkflowActionType.REMOVE_TAG.value: self._action_remove_tag,
            WorkflowActionType.SEND_NOTIFICATION.value: self._action_send_notification,
            WorkflowActionType.SEND_WEBHOOK.value: self._action_send_webhook,
            WorkflowActionType.SEND_MESSAGE.value: self._action_send_message,
            WorkflowActionType.ADD_INTERNAL_NOTE.value: self._action_add_internal_note,
        }
        handler = handlers.get(action_type)
        if handler is None:
            return {"type": action_type, "success": False, "error": f"Unknown action type: {action_type}"}

        try:
            result = handler(db, action, ticket, depth)
        except Exception as e:
            db.rollback()
            logger.exception(
                "Workflow action %s failed",
                action_type,
                extra=build_log_context(ticket_id=str(ticket.id)),
            )
            return {"type": action_type, "success": False, "error": str(e)}
        return {"type": action_type, "success": True, "result": result}

    def _action_change_status(self, db: Session, action: dict, ticket: Ticket, depth: int) -> dict:
        old_status = ticket.status
        changed = ticket_service.change_status(
            db, ticket, action["value"], source=WorkflowEventSource.WORKFLOW, depth=depth + 1
        )
        return {"old_status": old_status, "new_status": ticket.status, "changed": changed}

    def _action_change_priority(self, db: Session, action: dict, ticket: Ticket, depth: int) -> dict:
        old_priority = ticket.priority
        changed = ticket_service.change_priority(
            db, ticket, action["value"], source=WorkflowEventSource.WORKFLOW, depth=depth + 1
        )
        return {"old_priority": old_priority, "new_priority": ticket.priority, "changed": changed}

    def _action_assign_agent(self, db: Session, action: dict, ticket: Ticket, depth: int) -> dict:
        if action.get("agent_id"):
            agent = db.get(Agent, UUID(action["agent_id"]))
            if agent is None or not agent.is_active:
                raise LookupError(f"Agent not found: {action['agent_id']}")
        else:
            agent = self.select_round_robin_agent(db, action.get("team"))
            if agent is None:
                raise LookupError(f"No active agents available in team {action.get('team')!r}")

        previous = ticket.assigned_agent_id
        changed = ticket_service.assign_agent(
            db, ticket, agent, source=WorkflowEventSource.WORKFLOW, depth=depth + 1
        )
        return {
            "previous_agent_id": str(previous) if previous else None,
            "new_agent_id": str(agent.id),
            "agent_name": agent.name,
            "changed": changed,
        }

    def select_round_robin_agent(self, db: Session, team: str | None) -> Agent | None:
        """Least recently assigned active agent in the team, online agents first."""
        query = db.query(Agent).filter(Agent.is_active.is_(True))
        if team:
            query = query.filter(Agent.team == team)
        return query.order_by(
            case((Agent.status == AgentStatus.ONLINE.value, 0), else_=1),
            Agent.last_assigned_at.is_(None).desc(),
            Agent.last_assigned_at.asc(),
            Agent.created_at.asc(),
        ).first()

    def _action_add_tag(self, db: Session, action: dict, ticket: Ticket, depth: int) -> dict:
        added = ticket_service.add_tag(db, ticket, action["value"])
        return {"tag": action["value"], "added": added, "tags": list(ticket.tags or [])}

    def _action_remove_tag(self, db: Session, action: dict, ticket: Ticket, depth: int) -> dict:
        removed = ticket_service.remove_tag(db, ticket, action["value"])
        return {"tag": action["value"], "removed": removed, "tags": list(ticket.tags or [])}

    def _action_send_notification(
        self, db: Session, action: dict, ticket: Ticket, depth: int
    ) -> dict:
        """Create in-app notifications for the agents selected by the filter."""
        audience = action.get("filter") or "all"
        query = db.query(Agent).filter(Agent.is_active.is_(True))
        if audience == "online":
            query = query.filter(Agent.status == AgentStatus.ONLINE.value)
        elif audience == "assigned":
            if not ticket.assigned_agent_id:
                return {"notified_count": 0, "message": "Ticket has no assigned agent"}
            query = query.filter(Agent.id == ticket.assigned_agent_id)
        agents = query.all()

        for agent in agents:
            db.add(
                AgentNotification(
                    agent_id=agent.id,
                    ticket_id=ticket.id,
                    title=action["title"][:200],
                    body=action["message"],
                )
            )
        db.commit()

        if action.get("email"):
            for agent in agents:
                job_service.schedule_job(
                    db=db,
                    job_type=JobType.AGENT_NOTIFICATION_EMAIL,
                    payload={
                        "agent_id": str(agent.id),
                        "ticket_id": str(ticket.id),
                        "title": action["title"],
                        "body": action["message"],
                    },
                )

        return {"notified_count": len(agents), "agent_ids": [str(a.id) for a in agents]}

    def _action_send_webhook(self, db: Session, action: dict, ticket: Ticket, depth: int) -> dict:
        """Queue deliveries to subscribed endpoints; delivery itself is a job."""
        from helpdesk.services import outbound_webhook_service

        deliveries = outbound_webhook_service.dispatch_event(
            db, action["event"], {"ticket": ticket_service.build_ticket_snapshot(ticket)}
        )
        return {"event": action["event"], "queued": len(deliveries)}

    def _action_send_message(self, db: Session, action: dict, ticket: Ticket, depth: int) -> dict:
        from helpdesk.services import channel_delivery_service, message_service

        if not action.get("content", "").strip():
            raise ValueError("Rendered message is empty")
        appended = message_service.append_message(
            db,
            ticket,
            SenderType.AGENT,
            action["content"],
            ticket.source_channel,
            metadata={"workflow_action": True},
            event_source=WorkflowEventSource.WORKFLOW,
            depth=depth + 1,
        )
        channel_delivery_service.schedule_delivery(db, appended.message)
        return {"message_id": str(appended.message.id), "channel": ticket.source_channel}

    def _action_add_internal_note(
        self, db: Session, action: dict, ticket: Ticket, depth: int
    ) -> dict:
        from helpdesk.services import message_service

        if not action.get("content", "").strip():
            raise ValueError("Note content is required")
        appended = message_service.append_message(
            db,
            ticket,
            SenderType.AGENT,
            action["content"],
            ChannelType.DASHBOARD,
            metadata={"workflow_action": True},
            is_internal=True,
        )
        return {"message_id": str(appended.message.id)}


# Singleton instance
engine = WorkflowEngine()

