"""Tests for rule matching: activity, trigger, conditions and ordering."""

from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from rlly.schemas.rules import ComparisonOperator, FieldComparison, RuleConditions
from rlly.services.rule_engine import evaluate_comparison, match_rules, rule_matches

# Thursday 2026-01-15 14:30 UTC
EVENT_TS = datetime(2026, 1, 15, 14, 30, tzinfo=UTC)


def make_rule(
    *,
    trigger: str = "event_goes_live",
    conditions: dict[str, Any] | None = None,
    priority: int | None = 1,
    active: bool = True,
    name: str = "rule",
) -> SimpleNamespace:
    return SimpleNamespace(
        trigger=trigger,
        conditions=conditions,
        priority=priority,
        active=active,
        name=name,
    )


def make_event(data: dict[str, Any] | None = None, timestamp: datetime = EVENT_TS) -> SimpleNamespace:
    return SimpleNamespace(type="event_goes_live", data=data or {}, timestamp=timestamp)


def make_user(
    segments: list[str] | None = None,
    created_at: datetime = datetime(2025, 6, 1, tzinfo=UTC),
) -> SimpleNamespace:
    return SimpleNamespace(segments=segments or [], created_at=created_at)


class TestRuleSelection:
    """Active flag, trigger matching and ordering."""

    def test_rule_without_conditions_matches(self) -> None:
        """A rule with no conditions fires for its trigger."""
        assert rule_matches(make_rule(), make_event(), make_user())

    def test_inactive_rule_never_matches(self) -> None:
        """Inactive rules are skipped even when everything else fits."""
        assert not rule_matches(make_rule(active=False), make_event(), make_user())

    def test_other_trigger_does_not_match(self) -> None:
        """A rule only fires for its own event type."""
        assert not rule_matches(make_rule(trigger="event_reminder"), make_event(), make_user())

    def test_all_matches_fire_in_priority_order(self) -> None:
        """Every matching rule is returned, lowest priority first, unset last."""
        rules = [
            make_rule(priority=None, name="unset"),
            make_rule(priority=5, name="five"),
            make_rule(priority=1, name="one"),
            make_rule(priority=3, active=False, name="off"),
        ]
        matched = match_rules(rules, make_event(), make_user())
        assert [rule.name for rule in matched] == ["one", "five", "unset"]


class TestUserConditions:
    """user_segment and join-date conditions."""

    def test_segment_required(self) -> None:
        """user_segment must appear in the user's segments."""
        rule = make_rule(conditions={"user_segment": "host"})
        assert rule_matches(rule, make_event(), make_user(segments=["host", "beta"]))
        assert not rule_matches(rule, make_event(), make_user(segments=["beta"]))

    def test_joined_after_and_before(self) -> None:
        """Join-date bounds are strict."""
        rule = make_rule(
            conditions={
                "user_joined_after": "2025-01-01T00:00:00Z",
                "user_joined_before": "2026-01-01T00:00:00Z",
            }
        )
        assert rule_matches(rule, make_event(), make_user(created_at=datetime(2025, 6, 1, tzinfo=UTC)))
        assert not rule_matches(rule, make_event(), make_user(created_at=datetime(2024, 6, 1, tzinfo=UTC)))
        assert not rule_matches(rule, make_event(), make_user(created_at=datetime(2026, 1, 1, tzinfo=UTC)))

    def test_naive_join_bound_is_treated_as_utc(self) -> None:
        """A join bound without an offset is read as UTC."""
        conditions = RuleConditions.model_validate({"user_joined_after": "2025-01-01T00:00:00"})
        assert conditions.user_joined_after == datetime(2025, 1, 1, tzinfo=UTC)


class TestEventConditions:
    """is_public_event and event_capacity conditions."""

    def test_public_event(self) -> None:
        """is_public_event compares against the payload's is_public field."""
        rule = make_rule(conditions={"is_public_event": True})
        assert rule_matches(rule, make_event({"is_public": True}), make_user())
        assert not rule_matches(rule, make_event({"is_public": False}), make_user())
        assert not rule_matches(rule, make_event({}), make_user())

    def test_capacity_range_is_inclusive(self) -> None:
        """Capacity bounds include both ends; a missing capacity fails."""
        rule = make_rule(conditions={"event_capacity": {"min": 10, "max": 100}})
        assert rule_matches(rule, make_event({"capacity": 10}), make_user())
        assert rule_matches(rule, make_event({"capacity": 100}), make_user())
        assert not rule_matches(rule, make_event({"capacity": 101}), make_user())
        assert not rule_matches(rule, make_event({}), make_user())

    def test_capacity_min_above_max_rejected(self) -> None:
        """Inverted capacity bounds are a validation error."""
        with pytest.raises(ValidationError):
            RuleConditions.model_validate({"event_capacity": {"min": 10, "max": 5}})


class TestTimeConditions:
    """time_of_day and day_of_week conditions."""

    def test_time_window(self) -> None:
        """Start is inclusive, end exclusive."""
        inside = make_rule(conditions={"time_of_day": {"start": "14:30", "end": "15:00"}})
        outside = make_rule(conditions={"time_of_day": {"start": "09:00", "end": "14:30"}})
        assert rule_matches(inside, make_event(), make_user())
        assert not rule_matches(outside, make_event(), make_user())

    def test_time_window_wrapping_midnight(self) -> None:
        """A window whose end precedes its start spans midnight."""
        rule = make_rule(conditions={"time_of_day": {"start": "22:00", "end": "06:00"}})
        late = make_event(timestamp=datetime(2026, 1, 15, 23, 15, tzinfo=UTC))
        early = make_event(timestamp=datetime(2026, 1, 16, 5, 59, tzinfo=UTC))
        assert rule_matches(rule, late, make_user())
        assert rule_matches(rule, early, make_user())
        assert not rule_matches(rule, make_event(), make_user())

    def test_time_window_uses_configured_timezone(self) -> None:
        """Times are compared in the given zone, not UTC."""
        rule = make_rule(conditions={"time_of_day": {"start": "09:00", "end": "10:00"}})
        # 14:30 UTC is 09:30 in New York in January
        assert rule_matches(rule, make_event(), make_user(), tz=ZoneInfo("America/New_York"))
        assert not rule_matches(rule, make_event(), make_user())

    def test_day_of_week_is_sunday_first(self) -> None:
        """0 = Sunday, so a Thursday is 4."""
        thursday = make_rule(conditions={"day_of_week": [4]})
        weekend = make_rule(conditions={"day_of_week": [0, 6]})
        assert rule_matches(thursday, make_event(), make_user())
        assert not rule_matches(weekend, make_event(), make_user())

    def test_invalid_time_rejected(self) -> None:
        """time_of_day values must be HH:MM."""
        with pytest.raises(ValidationError):
            RuleConditions.model_validate({"time_of_day": {"start": "25:00", "end": "06:00"}})

    def test_invalid_day_rejected(self) -> None:
        """day_of_week values must be 0-6."""
        with pytest.raises(ValidationError):
            RuleConditions.model_validate({"day_of_week": [7]})


class TestCustomConditions:
    """Custom field comparisons."""

    @pytest.mark.parametrize(
        ("operator", "value", "data", "expected"),
        [
            (ComparisonOperator.EQUALS, "going", {"rsvp_status": "going"}, True),
            (ComparisonOperator.EQUALS, "going", {"rsvp_status": "maybe"}, False),
            (ComparisonOperator.EQUALS, 3, {"rsvp_status": 3.0}, True),
            (ComparisonOperator.EQUALS, True, {"rsvp_status": 1}, False),
            (ComparisonOperator.CONTAINS, "go", {"rsvp_status": "going"}, True),
            (ComparisonOperator.CONTAINS, "b", {"rsvp_status": ["a", "b"]}, True),
            (ComparisonOperator.CONTAINS, "c", {"rsvp_status": ["a", "b"]}, False),
            (ComparisonOperator.GREATER_THAN, 10, {"rsvp_status": 11}, True),
            (ComparisonOperator.GREATER_THAN, 10, {"rsvp_status": "11"}, False),
            (ComparisonOperator.LESS_THAN, 10, {"rsvp_status": 9.5}, True),
            (ComparisonOperator.EXISTS, None, {"rsvp_status": "x"}, True),
            (ComparisonOperator.EXISTS, None, {"rsvp_status": None}, False),
            (ComparisonOperator.EQUALS, "going", {}, False),
        ],
    )
    def test_operators(
        self,
        operator: ComparisonOperator,
        value: Any,
        data: dict[str, Any],
        expected: bool,
    ) -> None:
        """Each operator against present, absent and mistyped fields."""
        node = FieldComparison(field="rsvp_status", operator=operator, value=value)
        assert evaluate_comparison(node, data) is expected

    def test_all_custom_conditions_must_hold(self) -> None:
        """Custom conditions combine with AND."""
        rule = make_rule(
            conditions={
                "custom_conditions": [
                    {"field": "rsvp_status", "operator": "equals", "value": "going"},
                    {"field": "guest_count", "operator": "greater_than", "value": 0},
                ]
            }
        )
        assert rule_matches(rule, make_event({"rsvp_status": "going", "guest_count": 2}), make_user())
        assert not rule_matches(rule, make_event({"rsvp_status": "going", "guest_count": 0}), make_user())

    def test_comparison_requires_value(self) -> None:
        """Only exists may omit a value."""
        with pytest.raises(ValidationError):
            FieldComparison(field="rsvp_status", operator=ComparisonOperator.EQUALS)
