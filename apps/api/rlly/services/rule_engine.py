"""Rule matching: which active rules fire for an email event.

Everything here is pure. The email engine loads rules, the event and the
user, and asks ``match_rules`` which of them fire.
"""

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, time, tzinfo
from typing import Any, Protocol

from rlly.schemas.rules import (
    CapacityRange,
    ComparisonOperator,
    FieldComparison,
    RuleConditions,
    TimeWindow,
)


class RuleLike(Protocol):
    active: bool
    trigger: str
    priority: int | None
    conditions: Mapping[str, Any] | None


class EventLike(Protocol):
    type: str
    data: Mapping[str, Any]
    timestamp: datetime


class UserLike(Protocol):
    segments: list[str]
    created_at: datetime


def match_rules[R: RuleLike](
    rules: Iterable[R],
    event: EventLike,
    user: UserLike,
    tz: tzinfo | None = None,
) -> list[R]:
    """Return every rule that fires for ``event``, in processing order.

    Matches are independent: all of them fire. Lower ``priority`` values come
    first, rules without a priority last.
    """
    matched = [rule for rule in rules if rule_matches(rule, event, user, tz)]
    return sorted(matched, key=_priority_key)


def rule_matches(rule: RuleLike, event: EventLike, user: UserLike, tz: tzinfo | None = None) -> bool:
    """``rule.active and rule.trigger == event.type and conditions hold``."""
    if not rule.active or rule.trigger != event.type:
        return False
    conditions = (
        RuleConditions.model_validate(rule.conditions) if rule.conditions else None
    )
    return conditions_satisfied(conditions, event, user, tz)


def conditions_satisfied(
    conditions: RuleConditions | None,
    event: EventLike,
    user: UserLike,
    tz: tzinfo | None = None,
) -> bool:
    """Check every set condition against the event and user."""
    if conditions is None:
        return True

    data = event.data or {}
    local_ts = event.timestamp.astimezone(tz or UTC)

    # User-based
    if conditions.user_segment is not None and conditions.user_segment not in (user.segments or []):
        return False
    if conditions.user_joined_after is not None and not user.created_at > conditions.user_joined_after:
        return False
    if conditions.user_joined_before is not None and not user.created_at < conditions.user_joined_before:
        return False

    # Event-based
    if conditions.is_public_event is not None and data.get("is_public") != conditions.is_public_event:
        return False
    if conditions.event_capacity is not None and not _capacity_in_range(
        data.get("capacity"), conditions.event_capacity
    ):
        return False

    # Time-based
    if conditions.time_of_day is not None and not _in_time_window(local_ts.time(), conditions.time_of_day):
        return False
    if conditions.day_of_week is not None and _sunday_first_weekday(local_ts) not in conditions.day_of_week:
        return False

    return all(evaluate_comparison(node, data) for node in conditions.custom_conditions)


def evaluate_comparison(node: FieldComparison, data: Mapping[str, Any]) -> bool:
    """Interpret one comparison node against the payload's top-level fields."""
    present = node.field in data and data[node.field] is not None
    if node.operator == ComparisonOperator.EXISTS:
        return present
    if not present:
        return False

    actual = data[node.field]
    expected = node.value

    if node.operator == ComparisonOperator.EQUALS:
        return _equals(actual, expected)
    if node.operator == ComparisonOperator.CONTAINS:
        if isinstance(actual, str):
            return str(expected) in actual
        if isinstance(actual, list):
            return any(_equals(item, expected) for item in actual)
        return False
    if node.operator in (ComparisonOperator.GREATER_THAN, ComparisonOperator.LESS_THAN):
        left, right = _as_number(actual), _as_number(expected)
        if left is None or right is None:
            return False
        return left > right if node.operator == ComparisonOperator.GREATER_THAN else left < right
    return False


def _equals(actual: Any, expected: Any) -> bool:
    # bool is an int subclass; True must not equal 1 here
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual is expected
    left, right = _as_number(actual), _as_number(expected)
    if left is not None and right is not None:
        return left == right
    return bool(actual == expected)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    return None


def _capacity_in_range(capacity: Any, bounds: CapacityRange) -> bool:
    value = _as_number(capacity)
    if value is None:
        return False
    if bounds.min is not None and value < bounds.min:
        return False
    return not (bounds.max is not None and value > bounds.max)


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def _in_time_window(moment: time, window: TimeWindow) -> bool:
    start, end = _parse_hhmm(window.start), _parse_hhmm(window.end)
    moment = moment.replace(second=0, microsecond=0, tzinfo=None)
    if start <= end:
        return start <= moment < end
    # Wraps midnight
    return moment >= start or moment < end


def _sunday_first_weekday(moment: datetime) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (moment.weekday() + 1) % 7


def _priority_key(rule: RuleLike) -> tuple[int, int]:
    return (0, rule.priority) if rule.priority is not None else (1, 0)
