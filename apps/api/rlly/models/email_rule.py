"""EmailRule model: which template to send, when, for which event type."""

from typing import Any

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from rlly.models.base import Base, JSONType


class EmailRule(Base):
    """Declarative mapping from an event type plus conditions to a template.

    ``conditions`` holds a serialised ``RuleConditions`` document (see
    ``rlly.schemas.rules``). Lower ``priority`` values are processed first;
    priority never makes rules mutually exclusive.
    """

    __tablename__ = "email_rules"
    __table_args__ = (
        CheckConstraint("delay_minutes >= 0", name="delay_minutes_non_negative"),
        Index("ix_email_rules_trigger_active", "trigger", "active"),
    )

    trigger: Mapped[str] = mapped_column(String(50), nullable=False)
    conditions: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    delay_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    template_id: Mapped[str] = mapped_column(String(100), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    priority: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_attempts: Mapped[int | None] = mapped_column(Integer, nullable=True)

    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        default=dict,
        nullable=False,
    )

    def __repr__(self) -> str:
        state = "active" if self.active else "inactive"
        return f"<EmailRule {self.trigger} -> {self.template_id} ({state})>"
