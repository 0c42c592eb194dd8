"""Tests for the AI responder gate."""

import json
import uuid

import pytest

from helpdesk.core.config import settings
from helpdesk.db.enums import (
    ChannelType,
    DeliveryStatus,
    JobType,
    QueueType,
    SenderType,
    TicketPriority,
    TicketStatus,
)
from helpdesk.db.models import Job, Message
from helpdesk.services import ai_gate_service, message_service, ticket_service
from helpdesk.services.knowledge_service import KnowledgeResult
from helpdesk.services.web_search import TokenBucket, TTLCache, WebResult, WebSearchClient


def _completion(reply: str, confidence: float) -> str:
    return json.dumps({"reply": reply, "confidence": confidence})


def _faq_hit(similarity: float = 0.9) -> KnowledgeResult:
    return KnowledgeResult(
        id=uuid.uuid4(),
        title="Camera will not power on",
        content="Hold the power button for ten seconds to reset the camera.",
        category="faq",
        similarity=similarity,
    )


def _ticket_with_message(make_ticket, db, content: str, channel=ChannelType.WIDGET):
    ticket = make_ticket(channel=channel)
    message_service.append_message(db, ticket, SenderType.CUSTOMER, content, channel, emit_event=False)
    return ticket


def _knowledge(results):
    def _search(query: str):
        return list(results)

    return _search


# =============================================================================
# Pure helpers
# =============================================================================

def test_escalation_keywords_match_whole_words():
    assert ai_gate_service.find_escalation_keyword("I want a REFUND now") == "refund"
    assert ai_gate_service.find_escalation_keyword("let me speak to manager please") == "speak to manager"
    assert ai_gate_service.find_escalation_keyword("humanity is great") is None
    assert ai_gate_service.find_escalation_keyword("my camera won't turn on") is None


def test_confidence_is_capped_without_knowledge():
    assert ai_gate_service.adjust_confidence(0.95, []) == 0.6
    assert ai_gate_service.adjust_confidence(0.4, []) == 0.4


def test_confidence_boosts_from_knowledge():
    assert ai_gate_service.adjust_confidence(0.5, [_faq_hit(0.9)]) == pytest.approx(0.85)
    troubleshooting = KnowledgeResult(uuid.uuid4(), "t", "c", "troubleshooting", 0.5)
    assert ai_gate_service.adjust_confidence(0.5, [troubleshooting]) == pytest.approx(0.6)
    assert ai_gate_service.adjust_confidence(0.95, [_faq_hit(0.9)]) == 1.0


def test_parse_completion_accepts_wrapped_json():
    reply, confidence = ai_gate_service.parse_completion(
        'Sure!\n{"reply": " Try a reset. ", "confidence": "0.7"}'
    )
    assert reply == "Try a reset."
    assert confidence == 0.7


@pytest.mark.parametrize(
    "content",
    ["no json here", '{"confidence": 0.9}', '{"reply": "x", "confidence": "high"}', "[1, 2]"],
)
def test_parse_completion_rejects_garbled_output(content):
    with pytest.raises(ValueError):
        ai_gate_service.parse_completion(content)


# =============================================================================
# Gate decisions
# =============================================================================

@pytest.mark.asyncio
async def test_high_confidence_reply_is_appended_and_queued(db, make_ticket, fake_provider):
    ticket = _ticket_with_message(make_ticket, db, "my camera won't turn on", ChannelType.SMS)
    provider = fake_provider(_completion("Hold **power** for 10 seconds.", 0.8))

    result = await ai_gate_service.maybe_respond(
        db, ticket, provider=provider, knowledge_search=_knowledge([_faq_hit()])
    )

    assert result.sent is True
    assert result.confidence == 1.0
    # SMS formatting strips markdown
    assert result.content == "Hold power for 10 seconds."
    ai_message = db.get(Message, result.message_id)
    assert ai_message.sender_type == SenderType.AI.value
    assert ai_message.delivery_status == DeliveryStatus.PENDING.value
    assert ai_message.metadata_["confidence"] == 1.0
    db.refresh(ticket)
    assert ticket.ai_handled is True
    assert ticket.ai_confidence == 1.0
    assert ticket.queue_type == QueueType.AI.value
    assert db.query(Job).filter(Job.job_type == JobType.CHANNEL_DELIVERY.value).count() == 1


@pytest.mark.asyncio
async def test_in_app_reply_is_delivered_in_place(db, make_ticket, fake_provider):
    ticket = _ticket_with_message(make_ticket, db, "how do I reset my camera")
    provider = fake_provider(_completion("Hold the power button.", 0.9))

    result = await ai_gate_service.maybe_respond(
        db, ticket, provider=provider, knowledge_search=_knowledge([_faq_hit()])
    )

    assert result.sent is True
    assert db.get(Message, result.message_id).delivery_status == DeliveryStatus.DELIVERED.value
    assert db.query(Job).filter(Job.job_type == JobType.CHANNEL_DELIVERY.value).count() == 0


@pytest.mark.asyncio
async def test_low_confidence_routes_to_human(db, make_ticket, fake_provider, no_knowledge):
    ticket = _ticket_with_message(make_ticket, db, "what is the meaning of life")
    provider = fake_provider(_completion("42", 0.95))

    result = await ai_gate_service.maybe_respond(db, ticket, provider=provider, knowledge_search=no_knowledge)

    assert result.sent is False
    assert result.error == "low_confidence"
    assert result.confidence == 0.6
    db.refresh(ticket)
    assert ticket.queue_type == QueueType.HUMAN.value
    assert ticket.ai_handled is False
    assert db.query(Message).filter(Message.sender_type == SenderType.AI.value).count() == 0


@pytest.mark.asyncio
async def test_provider_failure_routes_to_human(db, make_ticket, fake_provider, no_knowledge):
    ticket = _ticket_with_message(make_ticket, db, "help")
    provider = fake_provider(error=RuntimeError("upstream 500"))

    result = await ai_gate_service.maybe_respond(db, ticket, provider=provider, knowledge_search=no_knowledge)

    assert result.sent is False
    assert result.error == "ai_error"
    db.refresh(ticket)
    assert ticket.queue_type == QueueType.HUMAN.value


@pytest.mark.asyncio
async def test_provider_timeout_routes_to_human(db, make_ticket, fake_provider, no_knowledge, monkeypatch):
    monkeypatch.setattr(settings, "AI_TIMEOUT_SECONDS", 0.05)
    ticket = _ticket_with_message(make_ticket, db, "help")
    provider = fake_provider(_completion("late", 0.99), delay=1.0)

    result = await ai_gate_service.maybe_respond(db, ticket, provider=provider, knowledge_search=no_knowledge)

    assert result.sent is False
    assert result.error == "ai_timeout"


@pytest.mark.asyncio
async def test_garbled_completion_routes_to_human(db, make_ticket, fake_provider, no_knowledge):
    ticket = _ticket_with_message(make_ticket, db, "help")

    result = await ai_gate_service.maybe_respond(
        db, ticket, provider=fake_provider("I think you should reboot"), knowledge_search=no_knowledge
    )

    assert result.sent is False
    assert result.error == "ai_invalid_response"


@pytest.mark.asyncio
async def test_empty_reply_routes_to_human(db, make_ticket, fake_provider):
    ticket = _ticket_with_message(make_ticket, db, "help")

    result = await ai_gate_service.maybe_respond(
        db, ticket, provider=fake_provider(_completion("  ", 0.99)), knowledge_search=_knowledge([_faq_hit()])
    )

    assert result.error == "ai_empty_reply"


@pytest.mark.asyncio
async def test_escalation_keyword_escalates_without_calling_provider(db, make_ticket, fake_provider):
    ticket = _ticket_with_message(make_ticket, db, "This is unacceptable, I want a refund")
    provider = fake_provider(_completion("ok", 0.99))

    result = await ai_gate_service.maybe_respond(db, ticket, provider=provider)

    assert result.sent is False
    assert result.error == "escalated"
    assert provider.calls == []
    db.refresh(ticket)
    assert ticket.status == TicketStatus.ESCALATED.value
    assert ticket.queue_type == QueueType.HUMAN.value
    assert ticket.priority == TicketPriority.HIGH.value
    events = db.query(Job).filter(Job.job_type == JobType.WORKFLOW_EVENT.value).all()
    assert {e.payload["trigger_event"] for e in events} >= {"status_changed", "priority_changed"}


@pytest.mark.asyncio
async def test_escalation_keeps_urgent_priority(db, make_ticket, fake_provider):
    ticket = _ticket_with_message(make_ticket, db, "Our account was hacked")
    ticket_service.change_priority(db, ticket, TicketPriority.URGENT)

    await ai_gate_service.maybe_respond(db, ticket, provider=fake_provider(_completion("ok", 0.99)))

    db.refresh(ticket)
    assert ticket.status == TicketStatus.ESCALATED.value
    assert ticket.priority == TicketPriority.URGENT.value


@pytest.mark.asyncio
async def test_missing_provider_routes_to_human(db, make_ticket):
    ticket = _ticket_with_message(make_ticket, db, "help")

    result = await ai_gate_service.maybe_respond(db, ticket)

    assert result.error == "ai_unavailable"


@pytest.mark.asyncio
async def test_gate_skips_human_queue_and_disabled_channels(db, make_ticket, fake_provider, monkeypatch):
    provider = fake_provider(_completion("hi", 0.99))
    human = _ticket_with_message(make_ticket, db, "help")
    human.queue_type = QueueType.HUMAN.value
    db.commit()

    assert (await ai_gate_service.maybe_respond(db, human, provider=provider)).error == "not_ai_queue"

    monkeypatch.setattr(settings, "AI_AUTO_RESPONSE_CHANNELS", "email")
    widget = make_ticket(channel=ChannelType.WIDGET, subject="other")
    assert (await ai_gate_service.maybe_respond(db, widget, provider=provider)).error == "ai_disabled"
    assert provider.calls == []


@pytest.mark.asyncio
async def test_no_customer_message_is_a_noop(db, make_ticket, fake_provider):
    ticket = make_ticket(channel=ChannelType.WIDGET)

    result = await ai_gate_service.maybe_respond(db, ticket, provider=fake_provider("{}"))

    assert result.error == "no_customer_message"
    db.refresh(ticket)
    assert ticket.queue_type == QueueType.AI.value


@pytest.mark.asyncio
async def test_web_results_are_used_when_knowledge_is_empty(db, make_ticket, fake_provider, no_knowledge):
    import httpx

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"web": {"results": [{"title": "<b>Reset guide</b>", "url": "https://example.com/r", "description": "Hold power"}]}},
        )

    web = WebSearchClient(
        api_key="brave-key",
        cache=TTLCache(10, 60),
        rate_limiter=TokenBucket(5, 1),
        transport=httpx.MockTransport(handler),
    )
    ticket = _ticket_with_message(make_ticket, db, "camera reset steps")
    provider = fake_provider(_completion("Try holding power.", 0.5))

    await ai_gate_service.maybe_respond(
        db, ticket, provider=provider, knowledge_search=no_knowledge, web_search=web
    )

    system_prompt = provider.calls[0][0].content
    assert "Reset guide (https://example.com/r)" in system_prompt


def test_prompt_maps_history_roles(db, make_ticket):
    ticket = make_ticket(channel=ChannelType.WIDGET)
    message_service.append_message(db, ticket, SenderType.CUSTOMER, "q1", ChannelType.WIDGET, emit_event=False)
    message_service.append_message(db, ticket, SenderType.AI, "a1", ChannelType.WIDGET, emit_event=False)
    history = message_service.list_recent_messages(db, ticket, 10)

    prompt = ai_gate_service.build_prompt(ChannelType.WIDGET, history, [], [])

    assert [m.role for m in prompt] == ["system", "user", "assistant"]
    assert "No knowledge base articles matched" in prompt[0].content
