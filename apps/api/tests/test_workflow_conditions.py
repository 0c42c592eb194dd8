"""Tests for workflow condition evaluation."""

import pytest

from helpdesk.services.workflow_conditions import evaluate_condition, evaluate_conditions, get_field_value

SNAPSHOT = {
    "status": "open",
    "priority": "high",
    "subject": "Refund request for order 42",
    "tags": ["VIP", "billing"],
    "queue_type": "ai",
    "source_channel": "email",
    "ai_handled": True,
    "ai_confidence": 0.72,
    "assigned_agent_id": None,
    "customer": {"preferred_language": "es"},
}


def _match(field, operator, value=None, event_data=None) -> bool:
    condition = {"field": field, "operator": operator, "value": value}
    return evaluate_condition(condition, SNAPSHOT, event_data).matched


@pytest.mark.parametrize(
    "field,operator,value,expected",
    [
        ("status", "equals", "OPEN", True),
        ("status", "not_equals", "open", False),
        ("ai_handled", "equals", True, True),
        ("ai_handled", "equals", "true", True),
        ("ai_confidence", "equals", "0.72", True),
        ("assigned_agent_id", "equals", None, True),
        ("assigned_agent_id", "equals", "", True),
        ("subject", "contains", "REFUND", True),
        ("subject", "contains", "cancel|order", True),
        ("subject", "not_contains", "cancel", True),
        ("tags", "contains", "vip", True),
        ("tags", "contains", ["vip", "billing"], True),
        ("tags", "contains", ["vip", "urgent"], False),
        ("tags", "contains", "bill", False),
        ("priority", "greater_than", "normal", True),
        ("priority", "less_than", "urgent", True),
        ("priority", "greater_than", "high", False),
        ("ai_confidence", "less_than", 0.8, True),
        ("ai_confidence", "greater_than", "abc", False),
        ("assigned_agent_id", "is_empty", None, True),
        ("tags", "is_not_empty", None, True),
        ("source_channel", "in", "sms, email", True),
        ("source_channel", "in", ["sms", "slack"], False),
        ("source_channel", "not_in", "sms|slack", True),
        ("customer_language", "equals", "es", True),
        ("status", "matches_regex", ".*", False),
    ],
)
def test_operator_semantics(field, operator, value, expected):
    assert _match(field, operator, value) is expected


def test_event_fields_come_from_event_data():
    event = {"old_status": "open", "new_status": "pending", "message_content": "Thanks, all good"}

    assert _match("new_status", "equals", "pending", event)
    assert _match("old_status", "not_equals", "pending", event)
    assert _match("message_content", "contains", "thanks", event)
    assert get_field_value("new_status", SNAPSHOT, None) is None


def test_customer_language_defaults_to_english():
    assert get_field_value("customer_language", {"customer": None}) == "en"


def test_conditions_are_anded_and_empty_list_matches():
    matched, results = evaluate_conditions(
        [
            {"field": "status", "operator": "equals", "value": "open"},
            {"field": "priority", "operator": "equals", "value": "low"},
        ],
        SNAPSHOT,
    )
    assert matched is False
    assert [r.matched for r in results] == [True, False]
    assert results[1].actual_value == "high"

    assert evaluate_conditions([], SNAPSHOT) == (True, [])
