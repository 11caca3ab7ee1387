"""Pydantic schemas for the delayed-send queue, batches and goes-live scheduling."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from pydantic import Field, field_validator

from rlly.schemas.common import BaseSchema

# --- Scheduled emails ---


class ScheduledEmailResponse(BaseSchema):
    """API response for a scheduled email."""

    id: UUID
    user_id: UUID
    rule_id: UUID | None
    email_event_id: UUID | None
    template_id: str
    event_type: str | None
    scheduled_for: datetime
    expires_at: datetime
    status: str
    attempts: int
    max_attempts: int
    error: str | None
    last_attempt_at: datetime | None
    sent_at: datetime | None
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def _status_value(cls, value: Any) -> Any:
        return getattr(value, "value", value)


class ProcessingStats(BaseSchema):
    """Counts of scheduled emails per status."""

    total_scheduled: int = 0
    pending: int = 0
    processing: int = 0
    sent: int = 0
    failed: int = 0
    cancelled: int = 0
    expired: int = 0


class DispatchRunResult(BaseSchema):
    """Outcome of one dispatcher pass."""

    expired: int = 0
    reclaimed: int = 0
    claimed: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0
    skipped: int = 0


# --- Goes-live scheduling ---


class GoesLiveScheduleResponse(BaseSchema):
    """Result of scheduling goes-live notifications for an event."""

    event_id: UUID
    scheduled: int
    event_start_time: datetime
    callback_registered: bool


# --- Batches ---


class EmailBatchCreate(BaseSchema):
    """Request body for creating a batch."""

    name: str = Field(..., min_length=1, max_length=255)
    template_id: str = Field(..., min_length=1, max_length=100)
    user_ids: list[UUID] = Field(..., min_length=1, max_length=10000)
    event_data: dict[str, Any] = Field(default_factory=dict)
    scheduled_for: datetime | None = None
    created_by: UUID | None = None

    @field_validator("scheduled_for")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class EmailBatchResponse(BaseSchema):
    """API response for a batch."""

    id: UUID
    name: str
    template_id: str
    user_ids: list[UUID]
    scheduled_for: datetime | None
    status: str
    total_emails: int
    sent_emails: int
    failed_emails: int
    completed_at: datetime | None
    created_by: UUID | None
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def _status_value(cls, value: Any) -> Any:
        return getattr(value, "value", value)
