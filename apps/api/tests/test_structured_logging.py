"""Tests for structured logging helpers."""

from helpdesk.core.structured_logging import build_log_context, mask_identifier


def test_build_log_context_includes_only_provided_fields():
    context = build_log_context(
        ticket_id="ticket-1",
        customer_id="customer-1",
        channel="sms",
        request_id="req-1",
    )

    assert context == {
        "ticket_id": "ticket-1",
        "customer_id": "customer-1",
        "channel": "sms",
        "request_id": "req-1",
    }


def test_build_log_context_ignores_empty_fields():
    context = build_log_context(
        ticket_id="",
        message_id=None,
        job_id="job-1",
    )

    assert context == {"job_id": "job-1"}


def test_mask_identifier_hides_pii():
    assert mask_identifier("jane.doe@example.com") == "jan...@example.com"
    assert mask_identifier("+15551234567") == "***4567"
    assert mask_identifier("U12") == "***"
    assert mask_identifier(None) == ""
