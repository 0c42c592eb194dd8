"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from helpdesk.db.enums import JobType
from helpdesk.jobs.handlers import notifications, ticketing, webhooks, workflows

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.WORKFLOW_EVENT.value: workflows.process_workflow_event,
    JobType.PRIORITY_CLASSIFICATION.value: ticketing.process_priority_classification,
    JobType.CHANNEL_DELIVERY.value: ticketing.process_channel_delivery,
    JobType.WEBHOOK_DELIVERY.value: webhooks.process_webhook_delivery,
    JobType.AGENT_NOTIFICATION_EMAIL.value: notifications.process_agent_notification_email,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
