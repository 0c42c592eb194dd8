"""
Workflow condition evaluation.

Pure functions over a ticket snapshot (see `ticket_service.build_ticket_snapshot`)
and the triggering event's data. Nothing here touches the database, so the
live engine and the dry-run tester share exactly this code.
"""

from dataclasses import asdict, dataclass
from typing import Any, Mapping

from helpdesk.db.enums import PRIORITY_ORDER, WorkflowConditionOperator

# Fields read from the ticket snapshot; anything else comes from event data
TICKET_FIELDS = frozenset(
    {
        "status",
        "priority",
        "subject",
        "tags",
        "queue_type",
        "source_channel",
        "ai_handled",
        "ai_confidence",
        "assigned_agent_id",
    }
)
EVENT_FIELDS = frozenset(
    {
        "old_status",
        "new_status",
        "old_priority",
        "new_priority",
        "old_agent_id",
        "new_agent_id",
        "breach_type",
        "message_content",
        "message_sender_type",
        "message_source",
    }
)
CONDITION_FIELDS = TICKET_FIELDS | EVENT_FIELDS | {"customer_language"}

PRIORITY_FIELDS = frozenset({"priority", "old_priority", "new_priority"})
_PRIORITY_RANK = {name: rank for rank, name in enumerate(PRIORITY_ORDER)}


@dataclass(frozen=True)
class ConditionResult:
    field: str
    operator: str
    expected_value: Any
    actual_value: Any
    matched: bool

    def to_dict(self) -> dict:
        return asdict(self)


def get_field_value(field: str, snapshot: Mapping, event_data: Mapping | None = None) -> Any:
    """Read a condition field from the snapshot or the event payload."""
    event_data = event_data or {}
    if field == "customer_language":
        customer = snapshot.get("customer") or {}
        return customer.get("preferred_language") or "en"
    if field == "tags":
        return list(snapshot.get("tags") or [])
    if field in TICKET_FIELDS:
        return snapshot.get(field)
    return event_data.get(field)


def _split_alternatives(value: str, separators: str = "|") -> list[str]:
    for sep in separators[1:]:
        value = value.replace(sep, separators[0])
    return [part.strip().lower() for part in value.split(separators[0]) if part.strip()]


def _equals(actual: Any, expected: Any) -> bool:
    if actual is None or actual == "":
        return expected is None or expected == ""
    if isinstance(expected, bool):
        if isinstance(actual, bool):
            return actual is expected
        if isinstance(actual, str):
            return actual.strip().lower() == str(expected).lower()
        return bool(actual) is expected
    if isinstance(actual, bool) and isinstance(expected, str):
        return str(actual).lower() == expected.strip().lower()
    if isinstance(actual, str) and isinstance(expected, str):
        return actual.lower() == expected.lower()
    if isinstance(actual, (int, float)) and isinstance(expected, str):
        try:
            return float(actual) == float(expected)
        except ValueError:
            return False
    return actual == expected


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (list, tuple, set)):
        items = [str(item).lower() for item in actual]
        if isinstance(expected, (list, tuple)):
            return all(str(exp).lower() in items for exp in expected)
        return str(expected).lower() in items
    if isinstance(actual, str) and isinstance(expected, str):
        haystack = actual.lower()
        return any(pattern in haystack for pattern in _split_alternatives(expected))
    return False


def _to_number(field: str, value: Any) -> float | None:
    if field in PRIORITY_FIELDS and isinstance(value, str):
        rank = _PRIORITY_RANK.get(value.strip().lower())
        if rank is not None:
            return float(rank)
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _compare(field: str, actual: Any, expected: Any) -> int | None:
    left = _to_number(field, actual)
    right = _to_number(field, expected)
    if left is None or right is None:
        return None
    return (left > right) - (left < right)


def _is_empty(actual: Any) -> bool:
    if actual is None:
        return True
    if isinstance(actual, str):
        return not actual.strip()
    if isinstance(actual, (list, tuple, set, dict)):
        return len(actual) == 0
    return False


def _in(actual: Any, expected: Any) -> bool:
    if isinstance(expected, str):
        values = _split_alternatives(expected, "|,")
    elif isinstance(expected, (list, tuple, set)):
        values = [str(v).lower() for v in expected]
    else:
        return _equals(actual, expected)
    if actual is None:
        return False
    return str(actual).lower() in values


def _evaluate(operator: str, field: str, actual: Any, expected: Any) -> bool:
    if operator == WorkflowConditionOperator.EQUALS.value:
        return _equals(actual, expected)
    if operator == WorkflowConditionOperator.NOT_EQUALS.value:
        return not _equals(actual, expected)
    if operator == WorkflowConditionOperator.CONTAINS.value:
        return _contains(actual, expected)
    if operator == WorkflowConditionOperator.NOT_CONTAINS.value:
        return not _contains(actual, expected)
    if operator == WorkflowConditionOperator.GREATER_THAN.value:
        return _compare(field, actual, expected) == 1
    if operator == WorkflowConditionOperator.LESS_THAN.value:
        return _compare(field, actual, expected) == -1
    if operator == WorkflowConditionOperator.IS_EMPTY.value:
        return _is_empty(actual)
    if operator == WorkflowConditionOperator.IS_NOT_EMPTY.value:
        return not _is_empty(actual)
    if operator == WorkflowConditionOperator.IN.value:
        return _in(actual, expected)
    if operator == WorkflowConditionOperator.NOT_IN.value:
        return not _in(actual, expected)
    # Unknown operators never match
    return False


def evaluate_condition(
    condition: Mapping, snapshot: Mapping, event_data: Mapping | None = None
) -> ConditionResult:
    field = condition.get("field")
    operator = condition.get("operator")
    if isinstance(operator, WorkflowConditionOperator):
        operator = operator.value
    expected = condition.get("value")
    actual = get_field_value(field, snapshot, event_data)
    return ConditionResult(
        field=field,
        operator=operator,
        expected_value=expected,
        actual_value=actual,
        matched=_evaluate(operator, field, actual, expected),
    )


def evaluate_conditions(
    conditions: list[Mapping] | None,
    snapshot: Mapping,
    event_data: Mapping | None = None,
) -> tuple[bool, list[ConditionResult]]:
    """AND over all conditions; an empty list matches."""
    if not conditions:
        return True, []
    results = [evaluate_condition(c, snapshot, event_data) for c in conditions]
    return all(r.matched for r in results), results
