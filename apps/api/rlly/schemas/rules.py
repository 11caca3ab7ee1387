"""Pydantic schemas for email rules and their declarative conditions."""

import enum
import re
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, Field, field_validator, model_validator

from rlly.models.email_event import EventType
from rlly.schemas.common import BaseSchema

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class ComparisonOperator(str, enum.Enum):
    """Operators available to custom field conditions."""

    EQUALS = "equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EXISTS = "exists"


# Operand of a comparison. Scalars only: conditions never reach into nested data.
Operand = bool | int | float | str | None


class FieldComparison(BaseSchema):
    """``payload[field] <operator> value`` over a top-level payload field."""

    field: str = Field(..., pattern=r"^[A-Za-z_][A-Za-z0-9_]*$", max_length=100)
    operator: ComparisonOperator
    value: Operand = None

    @model_validator(mode="after")
    def _value_required(self) -> "FieldComparison":
        if self.operator != ComparisonOperator.EXISTS and self.value is None:
            raise ValueError(f"operator {self.operator.value!r} requires a value")
        return self


class CapacityRange(BaseSchema):
    """Inclusive bounds on an event's capacity."""

    min: int | None = Field(default=None, ge=0)
    max: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _ordered(self) -> "CapacityRange":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("capacity min must not exceed max")
        return self


class TimeWindow(BaseSchema):
    """Time-of-day window, ``start`` inclusive and ``end`` exclusive.

    A window whose end is before its start wraps midnight (22:00-06:00).
    """

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def _validate_hhmm(cls, value: str) -> str:
        if not _HHMM.match(value):
            raise ValueError(f"expected HH:MM, got {value!r}")
        return value


class RuleConditions(BaseSchema):
    """Conditions that must all hold for a rule to fire.

    Unset fields are not checked.
    """

    # User-based
    user_segment: str | None = None
    user_joined_after: datetime | None = None
    user_joined_before: datetime | None = None

    # Event-based
    is_public_event: bool | None = None
    event_capacity: CapacityRange | None = None

    # Time-based (0 = Sunday ... 6 = Saturday)
    time_of_day: TimeWindow | None = None
    day_of_week: list[int] | None = None

    # Custom comparisons, all of which must hold
    custom_conditions: list[FieldComparison] = Field(default_factory=list)

    @field_validator("user_joined_after", "user_joined_before")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @field_validator("day_of_week")
    @classmethod
    def _validate_days(cls, days: list[int] | None) -> list[int] | None:
        if days is None:
            return None
        for day in days:
            if not 0 <= day <= 6:
                raise ValueError(f"day_of_week values must be 0-6, got {day}")
        return sorted(set(days))


# --- Rule CRUD ---


class EmailRuleCreate(BaseSchema):
    """Request body for creating a rule."""

    trigger: EventType
    template_id: str = Field(..., min_length=1, max_length=100)
    conditions: RuleConditions | None = None
    delay_minutes: int = Field(default=0, ge=0)
    priority: int | None = None
    max_attempts: int | None = Field(default=None, ge=1, le=10)
    active: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)


class EmailRuleUpdate(BaseSchema):
    """Partial update for a rule."""

    template_id: str | None = Field(default=None, min_length=1, max_length=100)
    conditions: RuleConditions | None = None
    delay_minutes: int | None = Field(default=None, ge=0)
    priority: int | None = None
    max_attempts: int | None = Field(default=None, ge=1, le=10)
    active: bool | None = None


class EmailRuleResponse(BaseSchema):
    """API response for a rule."""

    id: UUID
    trigger: str
    template_id: str
    conditions: RuleConditions | None
    delay_minutes: int
    priority: int | None
    max_attempts: int | None
    active: bool
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("metadata_", "metadata"),
    )
    created_at: datetime
    updated_at: datetime


class RuleMetricResponse(BaseSchema):
    """Counters for one rule."""

    rule_id: UUID
    total_triggers: int
    successful_sends: int
    failed_sends: int
    last_triggered: datetime | None
