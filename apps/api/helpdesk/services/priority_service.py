"""Priority classification for new tickets."""

from __future__ import annotations

import logging
import re

import anyio
from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import JobType, TicketPriority, WorkflowEventSource
from helpdesk.db.models import Job, Ticket
from helpdesk.services import job_service, ticket_service
from helpdesk.services.ai_provider import AIProvider, ChatMessage, get_provider

logger = logging.getLogger(__name__)

CONTENT_PREVIEW_CHARS = 500
PRIORITY_WORD_PATTERN = re.compile(r"\b(urgent|high|normal|low)\b", re.I)

CLASSIFICATION_PROMPT = """Classify the priority of this support ticket.

- urgent: service down, security issue, data loss, payment failure, legal threat
- high: feature broken for the customer, blocking their work, repeated contact
- normal: general questions, how-to requests, minor issues
- low: feedback, feature requests, cosmetic issues

Output ONLY one word: urgent, high, normal, or low."""


def parse_priority(output: str | None) -> TicketPriority:
    """Map model output to a priority; anything unrecognised is normal."""
    text = (output or "").strip().lower().strip(".!\"'")
    try:
        return TicketPriority(text)
    except ValueError:
        pass
    match = PRIORITY_WORD_PATTERN.search(text)
    if match:
        return TicketPriority(match.group(1).lower())
    return TicketPriority.NORMAL


async def classify_priority(
    subject: str,
    content: str,
    provider: AIProvider | None = None,
) -> TicketPriority:
    """Ask the completion service for a priority. Never raises."""
    provider = provider or get_provider()
    if provider is None:
        return TicketPriority.NORMAL

    messages = [
        ChatMessage(role="system", content=CLASSIFICATION_PROMPT),
        ChatMessage(
            role="user",
            content=f"Subject: {subject}\n\nMessage: {(content or '')[:CONTENT_PREVIEW_CHARS]}",
        ),
    ]
    try:
        with anyio.fail_after(settings.AI_TIMEOUT_SECONDS):
            response = await provider.chat(messages, temperature=0.0, max_tokens=5)
    except Exception as exc:
        logger.warning("Priority classification failed (%s)", type(exc).__name__)
        return TicketPriority.NORMAL
    return parse_priority(response.content)


def schedule_classification(db: Session, ticket: Ticket, content: str) -> Job | None:
    """Queue one classification job per ticket, remembering the priority it started with."""
    return job_service.schedule_job_once(
        db,
        JobType.PRIORITY_CLASSIFICATION,
        payload={
            "ticket_id": str(ticket.id),
            "content": content[:CONTENT_PREVIEW_CHARS],
            "priority": ticket.priority,
        },
        idempotency_key=f"priority:{ticket.id}",
    )


async def apply_classification(
    db: Session,
    ticket: Ticket,
    content: str,
    provider: AIProvider | None = None,
    expected_priority: str | None = None,
) -> TicketPriority | None:
    """
    Classify and store the priority; a change emits `priority_changed`.

    The result only lands while the ticket still has the priority it was
    created with (`expected_priority`, normal by default). A priority set
    by an agent, a workflow or escalation in the meantime is kept, and
    None is returned.
    """
    baseline = TicketPriority(expected_priority or TicketPriority.NORMAL).value
    if ticket.priority != baseline:
        logger.info(
            "Priority classification skipped: priority already set to %s",
            ticket.priority,
            extra=build_log_context(ticket_id=str(ticket.id)),
        )
        return None

    priority = await classify_priority(ticket.subject, content, provider=provider)
    db.refresh(ticket)
    if ticket.priority != baseline:
        return None
    changed = ticket_service.change_priority(
        db, ticket, priority, source=WorkflowEventSource.SYSTEM
    )
    if changed:
        logger.info(
            "Ticket priority set to %s",
            priority.value,
            extra=build_log_context(ticket_id=str(ticket.id)),
        )
    return priority
