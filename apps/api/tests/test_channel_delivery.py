"""Tests for outbound channel delivery (SMS, Slack, email, in-app)."""

import json

import httpx
import pytest

from helpdesk.core.config import settings
from helpdesk.db.enums import ChannelType, DeliveryStatus, JobType, SenderType
from helpdesk.db.models import Job
from helpdesk.services import channel_delivery_service, message_service
from helpdesk.services.channel_delivery_service import ChannelDeliveryError


def _reply(db, ticket, content="Thanks, we are on it.", channel=None):
    return message_service.append_message(
        db, ticket, SenderType.AGENT, content, channel or ticket.source_channel, emit_event=False
    ).message


def _no_requests(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


@pytest.fixture
def twilio_configured(monkeypatch):
    monkeypatch.setattr(settings, "TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setattr(settings, "TWILIO_AUTH_TOKEN", "token")
    monkeypatch.setattr(settings, "TWILIO_FROM_NUMBER", "+15550000000")


def test_in_app_replies_are_delivered_in_place(db, make_ticket):
    ticket = make_ticket(channel=ChannelType.WIDGET)
    message = _reply(db, ticket)

    assert channel_delivery_service.schedule_delivery(db, message) is None
    assert message.delivery_status == DeliveryStatus.DELIVERED.value
    assert db.query(Job).count() == 0


def test_schedule_delivery_queues_one_job_per_message(db, make_ticket):
    ticket = make_ticket(channel=ChannelType.EMAIL)
    message = _reply(db, ticket)

    first = channel_delivery_service.schedule_delivery(db, message)
    second = channel_delivery_service.schedule_delivery(db, message)

    assert first is not None
    assert first.job_type == JobType.CHANNEL_DELIVERY.value
    assert second is None
    assert db.query(Job).count() == 1


def test_customer_and_internal_messages_are_never_sent(db, make_ticket):
    ticket = make_ticket(channel=ChannelType.SMS)
    inbound = message_service.append_message(
        db, ticket, SenderType.CUSTOMER, "hi", ChannelType.SMS, emit_event=False
    ).message
    note = message_service.append_message(
        db, ticket, SenderType.AGENT, "note", ChannelType.DASHBOARD, is_internal=True
    ).message

    assert channel_delivery_service.schedule_delivery(db, inbound) is None
    assert channel_delivery_service.schedule_delivery(db, note) is None
    assert db.query(Job).count() == 0


@pytest.mark.asyncio
async def test_sms_without_credentials_runs_dry(db, make_customer, make_ticket):
    customer = make_customer(phone_number="+15551234567")
    ticket = make_ticket(customer=customer, channel=ChannelType.SMS)
    message = _reply(db, ticket)

    sent = await channel_delivery_service.deliver_message(
        db, message.id, transport=httpx.MockTransport(_no_requests)
    )

    assert sent.delivery_status == DeliveryStatus.SENT.value
    assert sent.metadata_["dry_run"] is True


@pytest.mark.asyncio
async def test_sms_sends_through_twilio(db, make_customer, make_ticket, twilio_configured):
    customer = make_customer(phone_number="+15551234567")
    ticket = make_ticket(customer=customer, channel=ChannelType.SMS)
    message = _reply(db, ticket, content="Your replacement ships today.")
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"sid": "SM999"})

    sent = await channel_delivery_service.deliver_message(
        db, message.id, transport=httpx.MockTransport(handler)
    )

    assert sent.delivery_status == DeliveryStatus.SENT.value
    assert sent.external_id == "SM999"
    assert len(requests) == 1
    assert "/Accounts/AC123/Messages.json" in str(requests[0].url)
    form = dict(pair.split("=", 1) for pair in requests[0].content.decode().split("&"))
    assert form["To"] == "%2B15551234567"


@pytest.mark.asyncio
async def test_sms_failure_marks_message_failed(db, make_customer, make_ticket, twilio_configured):
    customer = make_customer(phone_number="+15551234567")
    ticket = make_ticket(customer=customer, channel=ChannelType.SMS)
    message = _reply(db, ticket)

    with pytest.raises(httpx.HTTPStatusError):
        await channel_delivery_service.deliver_message(
            db, message.id, transport=httpx.MockTransport(lambda request: httpx.Response(400, json={}))
        )

    db.refresh(message)
    assert message.delivery_status == DeliveryStatus.FAILED.value
    assert "HTTPStatusError" in message.metadata_["delivery_error"]


@pytest.mark.asyncio
async def test_sms_without_phone_number_fails(db, make_ticket):
    ticket = make_ticket(channel=ChannelType.SMS)
    message = _reply(db, ticket)

    with pytest.raises(ChannelDeliveryError):
        await channel_delivery_service.deliver_message(
            db, message.id, transport=httpx.MockTransport(_no_requests)
        )

    db.refresh(message)
    assert message.delivery_status == DeliveryStatus.FAILED.value


@pytest.mark.asyncio
async def test_slack_reply_is_threaded(db, make_customer, make_ticket, monkeypatch):
    monkeypatch.setattr(settings, "SLACK_BOT_TOKEN", "xoxb-test")
    customer = make_customer(metadata_={"slack_id": "U123"})
    ticket = make_ticket(customer=customer, channel=ChannelType.SLACK)
    message_service.append_message(
        db,
        ticket,
        SenderType.CUSTOMER,
        "printer is broken",
        ChannelType.SLACK,
        external_id="1700000000.000100",
        metadata={"slack_channel": "C42", "thread_ref": "1700000000.000100"},
        emit_event=False,
    )
    message = _reply(db, ticket)
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        assert request.headers["Authorization"] == "Bearer xoxb-test"
        return httpx.Response(200, json={"ok": True, "ts": "1700000001.000200"})

    sent = await channel_delivery_service.deliver_message(
        db, message.id, transport=httpx.MockTransport(handler)
    )

    assert bodies == [
        {"channel": "C42", "text": "Thanks, we are on it.", "thread_ts": "1700000000.000100"}
    ]
    assert sent.external_id == "1700000001.000200"


@pytest.mark.asyncio
async def test_slack_api_error_fails_delivery(db, make_customer, make_ticket, monkeypatch):
    monkeypatch.setattr(settings, "SLACK_BOT_TOKEN", "xoxb-test")
    ticket = make_ticket(channel=ChannelType.SLACK)
    message_service.append_message(
        db, ticket, SenderType.CUSTOMER, "hi", ChannelType.SLACK,
        metadata={"slack_channel": "C42"}, emit_event=False,
    )
    message = _reply(db, ticket)

    with pytest.raises(ChannelDeliveryError, match="channel_not_found"):
        await channel_delivery_service.deliver_message(
            db,
            message.id,
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"ok": False, "error": "channel_not_found"})
            ),
        )


@pytest.mark.asyncio
async def test_email_reply_threads_on_inbound_message_id(db, make_ticket, monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    ticket = make_ticket(channel=ChannelType.EMAIL, subject="Broken camera")
    message_service.append_message(
        db, ticket, SenderType.CUSTOMER, "it broke", ChannelType.EMAIL,
        external_id="<abc@mail.example.com>", emit_event=False,
    )
    message = _reply(db, ticket)
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "email_1"})

    sent = await channel_delivery_service.deliver_message(
        db, message.id, transport=httpx.MockTransport(handler)
    )

    [body] = bodies
    assert body["to"] == ["owner@example.com"]
    assert body["subject"] == f"Re: Broken camera [Ticket #{ticket.id}]"
    assert body["headers"]["In-Reply-To"] == "<abc@mail.example.com>"
    assert sent.external_id == "email_1"
    assert "dry_run" not in sent.metadata_


@pytest.mark.asyncio
async def test_already_sent_message_is_not_resent(db, make_ticket):
    ticket = make_ticket(channel=ChannelType.EMAIL)
    message = _reply(db, ticket)
    message.delivery_status = DeliveryStatus.SENT.value
    db.commit()

    result = await channel_delivery_service.deliver_message(
        db, message.id, transport=httpx.MockTransport(_no_requests)
    )

    assert result.id == message.id
