"""
AI responder gate.

Decides whether a ticket gets an automatic reply, produces it with one
bounded completion call, and writes it back through the message appender.
Every failure degrades to "no reply, human queue"; nothing here raises
past the ingest pipeline.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable
from uuid import UUID

import anyio
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.exceptions import MessageAppendError
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import (
    PRIORITY_ORDER,
    ChannelType,
    DeliveryStatus,
    QueueType,
    SenderType,
    TicketPriority,
    TicketStatus,
    WorkflowEventSource,
)
from helpdesk.db.models import Message, Ticket
from helpdesk.services import message_service, reply_formatting, ticket_service
from helpdesk.services.ai_provider import AIProvider, ChatMessage, get_provider
from helpdesk.services.knowledge_service import KnowledgeResult, format_results_for_prompt
from helpdesk.services.web_search import WebResult, WebSearchClient
from helpdesk.services.web_search import format_results_for_prompt as format_web_results

logger = logging.getLogger(__name__)

ESCALATION_KEYWORDS = (
    "urgent",
    "emergency",
    "legal",
    "lawyer",
    "lawsuit",
    "refund",
    "cancel subscription",
    "delete my account",
    "security breach",
    "hacked",
    "fraud",
    "angry",
    "furious",
    "unacceptable",
    "speak to manager",
    "supervisor",
    "human",
    "real person",
)
ESCALATION_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(k) for k in ESCALATION_KEYWORDS) + r")\b", re.I
)
JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.S)

# Confidence adjustments from knowledge signals
KB_HIGH_SIMILARITY = 0.85
KB_HIGH_SIMILARITY_BOOST = 0.15
KB_FAQ_BOOST = 0.20
KB_TROUBLESHOOTING_BOOST = 0.10
NO_KB_CONFIDENCE_CAP = 0.6

RESPONSE_PROMPT = """You are a helpful customer support assistant.

Guidelines:
- Be warm, professional and concise.
- Ground your answer in the knowledge base articles provided; cite them as [Source: Article Title].
- If you do not have enough information, say so and offer a human follow-up.
- Never invent account details, prices or policies.

{channel_guidance}

Respond with a JSON object only:
{{"reply": "<message to send to the customer>", "confidence": <0.0-1.0 how sure you are the reply fully resolves the question>}}
"""

KnowledgeSearch = Callable[[str], list[KnowledgeResult]]
WebSearch = Callable[[str], Awaitable[list[WebResult]]]


@dataclass
class AIResponse:
    sent: bool
    content: str | None = None
    error: str | None = None
    confidence: float | None = None
    message_id: UUID | None = None


def find_escalation_keyword(text: str) -> str | None:
    match = ESCALATION_PATTERN.search(text or "")
    return match.group(1).lower() if match else None


def adjust_confidence(confidence: float, knowledge: list[KnowledgeResult]) -> float:
    """Apply knowledge-base signals to the model's self-reported confidence."""
    if knowledge:
        top = knowledge[0]
        if top.similarity > KB_HIGH_SIMILARITY:
            confidence += KB_HIGH_SIMILARITY_BOOST
        if top.is_faq:
            confidence += KB_FAQ_BOOST
        if top.is_troubleshooting:
            confidence += KB_TROUBLESHOOTING_BOOST
    else:
        confidence = min(NO_KB_CONFIDENCE_CAP, confidence)
    return max(0.0, min(1.0, confidence))


def parse_completion(content: str) -> tuple[str, float]:
    """
    Extract `(reply, confidence)` from the model output.

    Raises:
        ValueError: output is not the expected JSON object
    """
    match = JSON_OBJECT_PATTERN.search(content or "")
    if not match:
        raise ValueError("completion is not JSON")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("completion is not a JSON object")
    reply = data.get("reply")
    if not isinstance(reply, str):
        raise ValueError("completion has no reply")
    try:
        confidence = float(data.get("confidence", 0))
    except (TypeError, ValueError) as exc:
        raise ValueError("completion has no numeric confidence") from exc
    return reply.strip(), confidence


def build_prompt(
    channel: ChannelType,
    history: list[Message],
    knowledge: list[KnowledgeResult],
    web_results: list[WebResult],
) -> list[ChatMessage]:
    system = RESPONSE_PROMPT.format(channel_guidance=reply_formatting.channel_guidance(channel))
    if knowledge:
        system += "\nKnowledge base articles:\n" + format_results_for_prompt(knowledge)
    elif web_results:
        system += "\nWeb search results (verify before relying on them):\n" + format_web_results(
            web_results
        )
    else:
        system += "\nNo knowledge base articles matched this question."

    messages = [ChatMessage(role="system", content=system)]
    for message in history:
        role = "user" if message.sender_type == SenderType.CUSTOMER.value else "assistant"
        messages.append(ChatMessage(role=role, content=message.content))
    return messages


def _gate_reason(ticket: Ticket, channel: ChannelType) -> str | None:
    if ticket.queue_type != QueueType.AI.value:
        return "not_ai_queue"
    if ticket.status == TicketStatus.ESCALATED.value:
        return "ticket_escalated"
    if ticket.status == TicketStatus.RESOLVED.value:
        return "ticket_resolved"
    if channel.value not in settings.ai_channels_list:
        return "ai_disabled"
    return None


def _hand_off(db: Session, ticket: Ticket, reason: str, confidence: float | None = None) -> AIResponse:
    """Leave the ticket for a human and report why."""
    try:
        ticket_service.route_to_human(db, ticket)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Routing ticket to human queue failed (%s)",
            type(exc).__name__,
            extra=build_log_context(ticket_id=str(ticket.id)),
        )
    logger.info(
        "AI reply skipped: %s",
        reason,
        extra=build_log_context(ticket_id=str(ticket.id)),
    )
    return AIResponse(sent=False, error=reason, confidence=confidence)


async def maybe_respond(
    db: Session,
    ticket: Ticket,
    messages: list[Message] | None = None,
    channel: ChannelType | str | None = None,
    *,
    provider: AIProvider | None = None,
    knowledge_search: KnowledgeSearch | None = None,
    web_search: WebSearchClient | None = None,
) -> AIResponse:
    """Attempt an automatic reply for the ticket's latest customer message."""
    channel = ChannelType(channel or ticket.source_channel)
    reason = _gate_reason(ticket, channel)
    if reason:
        return AIResponse(sent=False, error=reason)

    if messages is None:
        messages = message_service.list_recent_messages(db, ticket, settings.AI_HISTORY_WINDOW)
    history = [m for m in messages if not m.is_internal][-settings.AI_HISTORY_WINDOW :]
    latest = next(
        (m for m in reversed(history) if m.sender_type == SenderType.CUSTOMER.value), None
    )
    if latest is None:
        return AIResponse(sent=False, error="no_customer_message")

    keyword = find_escalation_keyword(latest.content)
    if keyword:
        try:
            ticket_service.change_status(
                db, ticket, TicketStatus.ESCALATED, source=WorkflowEventSource.SYSTEM
            )
            if PRIORITY_ORDER.index(ticket.priority) < PRIORITY_ORDER.index(TicketPriority.HIGH.value):
                ticket_service.change_priority(
                    db, ticket, TicketPriority.HIGH, source=WorkflowEventSource.SYSTEM
                )
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(
                "Escalation failed (%s)",
                type(exc).__name__,
                extra=build_log_context(ticket_id=str(ticket.id)),
            )
        return _hand_off(db, ticket, "escalated")

    provider = provider or get_provider()
    if provider is None:
        return _hand_off(db, ticket, "ai_unavailable")

    if knowledge_search is None:
        from helpdesk.services.knowledge_service import search_articles

        def knowledge_search(query: str) -> list[KnowledgeResult]:
            return search_articles(db, query)

    try:
        knowledge = knowledge_search(latest.content)
    except Exception:
        logger.exception(
            "Knowledge search failed", extra=build_log_context(ticket_id=str(ticket.id))
        )
        knowledge = []

    web_results: list[WebResult] = []
    if not knowledge and web_search is not None and web_search.enabled:
        web_results = await web_search.search(latest.content)

    prompt = build_prompt(channel, history, knowledge, web_results)
    try:
        with anyio.fail_after(settings.AI_TIMEOUT_SECONDS):
            completion = await provider.chat(
                prompt, max_tokens=settings.AI_MAX_TOKENS, json_mode=True
            )
    except TimeoutError:
        return _hand_off(db, ticket, "ai_timeout")
    except Exception as exc:
        logger.warning(
            "Completion call failed (%s)",
            type(exc).__name__,
            extra=build_log_context(ticket_id=str(ticket.id)),
        )
        return _hand_off(db, ticket, "ai_error")

    try:
        reply, raw_confidence = parse_completion(completion.content)
    except ValueError:
        return _hand_off(db, ticket, "ai_invalid_response")

    confidence = adjust_confidence(raw_confidence, knowledge)
    if not reply:
        return _hand_off(db, ticket, "ai_empty_reply", confidence)
    if confidence < settings.AI_CONFIDENCE_THRESHOLD:
        return _hand_off(db, ticket, "low_confidence", confidence)

    content = reply_formatting.format_for_channel(reply, channel)
    try:
        appended = message_service.append_message(
            db,
            ticket,
            SenderType.AI,
            content,
            channel,
            metadata={"confidence": confidence},
            delivery_status=DeliveryStatus.PENDING,
        )
        ticket.ai_confidence = confidence
        ticket.ai_handled = True
        db.commit()
    except (MessageAppendError, SQLAlchemyError):
        db.rollback()
        return _hand_off(db, ticket, "append_failed", confidence)

    from helpdesk.services import channel_delivery_service

    channel_delivery_service.schedule_delivery(db, appended.message)
    logger.info(
        "AI reply sent (confidence %.2f)",
        confidence,
        extra=build_log_context(
            ticket_id=str(ticket.id), message_id=str(appended.message.id), channel=channel.value
        ),
    )
    return AIResponse(
        sent=True, content=content, confidence=confidence, message_id=appended.message.id
    )
