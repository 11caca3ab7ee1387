"""ScheduledEmail model: one queued unit of outbound email work."""

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rlly.models.base import Base, JSONType, UTCDateTime


class ScheduleStatus(str, enum.Enum):
    """Lifecycle of a scheduled email.

    pending -> processing -> sent | failed
    pending -> cancelled | expired
    processing -> pending (retryable delivery failure)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset(
    {
        ScheduleStatus.SENT,
        ScheduleStatus.FAILED,
        ScheduleStatus.CANCELLED,
        ScheduleStatus.EXPIRED,
    }
)


class ScheduledEmail(Base):
    """An email produced by an (EmailEvent, EmailRule) match.

    The ``processing`` status doubles as the advisory lock: only the
    dispatcher that moved a row from ``pending`` to ``processing`` may
    attempt delivery.
    """

    __tablename__ = "scheduled_emails"
    __table_args__ = (
        CheckConstraint("attempts <= max_attempts", name="attempts_within_max"),
        CheckConstraint("attempts >= 0", name="attempts_non_negative"),
        Index("ix_scheduled_emails_status_scheduled_for", "status", "scheduled_for"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rule_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("email_rules.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    email_event_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("email_events.id", ondelete="SET NULL"),
        nullable=True,
    )
    template_id: Mapped[str] = mapped_column(String(100), nullable=False)
    event_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    event_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)

    # Timing
    scheduled_for: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # State machine
    status: Mapped[ScheduleStatus] = mapped_column(
        Enum(
            ScheduleStatus,
            name="schedule_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=ScheduleStatus.PENDING,
        nullable=False,
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_attempt_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Delivery outcome
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return (
            f"<ScheduledEmail {self.template_id} ({self.status.value}) "
            f"attempts={self.attempts}/{self.max_attempts}>"
        )
