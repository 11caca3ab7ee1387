"""Delivery log and per-rule counters for the notification engine."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rlly.models.base import Base, JSONType, UTCDateTime


class EmailMetric(Base):
    """One delivery attempt outcome.

    ``email_id`` is the provider message id, or ``"failed"`` when the
    attempt did not produce one.
    """

    __tablename__ = "email_metrics"

    email_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)
    template_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    rule_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    scheduled_email_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("scheduled_emails.id", ondelete="SET NULL"),
        nullable=True,
    )
    batch_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    event_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sent_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        default=dict,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<EmailMetric {self.template_id} {self.email_id}>"


class RuleMetric(Base):
    """Running counters for one rule."""

    __tablename__ = "rule_metrics"

    rule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("email_rules.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    total_triggers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    successful_sends: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_sends: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_triggered: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<RuleMetric rule={self.rule_id} triggers={self.total_triggers}>"
