"""Tests for mapping inbound messages onto tickets."""

import uuid

import pytest

from helpdesk.core.exceptions import ThreadResolutionError
from helpdesk.core.config import settings
from helpdesk.db.enums import ChannelType, QueueType, SenderType, TicketStatus
from helpdesk.services import message_service, thread_service


def test_first_message_creates_ticket_with_generated_subject(db, make_customer):
    customer = make_customer(email="first@example.com")

    result = thread_service.resolve_thread(
        db, customer, ChannelType.EMAIL, message_content="My camera won't turn on after the update"
    )

    assert result.is_new is True
    assert result.ticket.customer_id == customer.id
    assert result.ticket.status == TicketStatus.OPEN.value
    assert result.ticket.source_channel == "email"
    assert result.ticket.subject


def test_email_subject_is_used_for_new_ticket(db, make_customer):
    customer = make_customer(email="subject@example.com")

    result = thread_service.resolve_thread(
        db, customer, ChannelType.EMAIL, message_content="body", subject="Billing question"
    )

    assert result.ticket.subject == "Billing question"


def test_redelivered_external_id_returns_original_ticket(db, make_ticket):
    ticket = make_ticket(channel=ChannelType.SMS)
    message_service.append_message(
        db, ticket, SenderType.CUSTOMER, "hello", ChannelType.SMS, external_id="SM1", emit_event=False
    )

    result = thread_service.resolve_thread(
        db, ticket.customer, ChannelType.SMS, message_content="hello", external_id="SM1"
    )

    assert result.is_new is False
    assert result.ticket.id == ticket.id


def test_explicit_ticket_must_belong_to_customer(db, make_customer, make_ticket):
    ticket = make_ticket()
    stranger = make_customer(email="stranger@example.com")

    with pytest.raises(ThreadResolutionError):
        thread_service.resolve_thread(
            db, stranger, ChannelType.WIDGET, message_content="hi", explicit_ticket_id=ticket.id
        )
    with pytest.raises(ThreadResolutionError):
        thread_service.resolve_thread(
            db, stranger, ChannelType.WIDGET, message_content="hi", explicit_ticket_id=uuid.uuid4()
        )


def test_explicit_resolved_ticket_starts_new_one(db, make_ticket):
    ticket = make_ticket(channel=ChannelType.WIDGET, status=TicketStatus.RESOLVED.value)

    result = thread_service.resolve_thread(
        db, ticket.customer, ChannelType.WIDGET, message_content="again", explicit_ticket_id=ticket.id
    )

    assert result.is_new is True
    assert result.ticket.id != ticket.id


def test_slack_thread_reference_continues_ticket(db, make_customer, make_ticket):
    customer = make_customer(metadata_={"slack_id": "U1"})
    ticket = make_ticket(customer=customer, channel=ChannelType.SLACK)
    message_service.append_message(
        db,
        ticket,
        SenderType.CUSTOMER,
        "root",
        ChannelType.SLACK,
        external_id="1700000000.000100",
        metadata={"thread_ref": "1700000000.000100"},
        emit_event=False,
    )

    result = thread_service.resolve_thread(
        db,
        customer,
        ChannelType.SLACK,
        message_content="reply",
        external_id="1700000000.000200",
        thread_refs=["1700000000.000100"],
    )

    assert result.is_new is False
    assert result.ticket.id == ticket.id


def test_email_in_reply_to_continues_ticket(db, make_ticket):
    ticket = make_ticket(channel=ChannelType.EMAIL)
    message_service.append_message(
        db, ticket, SenderType.CUSTOMER, "original", ChannelType.EMAIL, external_id="<abc@mail>", emit_event=False
    )

    result = thread_service.resolve_thread(
        db, ticket.customer, ChannelType.EMAIL, message_content="follow up", thread_refs=["<abc@mail>"]
    )

    assert result.ticket.id == ticket.id


def test_ticket_tag_in_subject_continues_ticket(db, make_ticket):
    ticket = make_ticket(channel=ChannelType.EMAIL)

    result = thread_service.resolve_thread(
        db,
        ticket.customer,
        ChannelType.EMAIL,
        message_content="thanks",
        subject=f"Re: Help needed [Ticket #{ticket.id}]",
    )

    assert result.is_new is False
    assert result.ticket.id == ticket.id


def test_sms_continues_latest_open_ticket(db, make_ticket):
    ticket = make_ticket(channel=ChannelType.SMS)

    result = thread_service.resolve_thread(db, ticket.customer, ChannelType.SMS, message_content="still broken")

    assert result.is_new is False
    assert result.ticket.id == ticket.id


def test_email_without_references_opens_new_ticket(db, make_ticket):
    ticket = make_ticket(channel=ChannelType.EMAIL)

    result = thread_service.resolve_thread(db, ticket.customer, ChannelType.EMAIL, message_content="new topic")

    assert result.is_new is True
    assert result.ticket.id != ticket.id


def test_resolved_sms_ticket_is_not_continued(db, make_ticket):
    ticket = make_ticket(channel=ChannelType.SMS, status=TicketStatus.RESOLVED.value)

    result = thread_service.resolve_thread(db, ticket.customer, ChannelType.SMS, message_content="hello again")

    assert result.is_new is True


def test_new_ticket_is_ai_handled_unless_channel_is_human_first(db, make_customer, monkeypatch):
    customer = make_customer(email="queue@example.com")

    ai_first = thread_service.resolve_thread(db, customer, ChannelType.EMAIL, message_content="hello")
    monkeypatch.setattr(settings, "HUMAN_FIRST_CHANNELS", "email")
    human_first = thread_service.resolve_thread(
        db, customer, ChannelType.EMAIL, message_content="hello again"
    )

    assert ai_first.ticket.status == TicketStatus.OPEN.value
    assert ai_first.ticket.ai_handled is True
    assert ai_first.ticket.queue_type == QueueType.AI.value
    assert human_first.is_new is True
    assert human_first.ticket.ai_handled is False
    assert human_first.ticket.queue_type == QueueType.HUMAN.value
