"""EmailBatch model for bulk sends of one template to many users."""

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import CheckConstraint, Enum, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rlly.models.base import Base, JSONType, UTCDateTime


class BatchStatus(str, enum.Enum):
    """Lifecycle of a batch: draft -> scheduled -> processing -> completed."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EmailBatch(Base):
    """A bulk send of one template to a list of users."""

    __tablename__ = "email_batches"
    __table_args__ = (
        CheckConstraint(
            "sent_emails + failed_emails <= total_emails", name="counts_within_total"
        ),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    template_id: Mapped[str] = mapped_column(String(100), nullable=False)
    user_ids: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)

    # Shared payload merged with each recipient's own fields
    event_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)

    scheduled_for: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    status: Mapped[BatchStatus] = mapped_column(
        Enum(
            BatchStatus,
            name="batch_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=BatchStatus.DRAFT,
        nullable=False,
    )
    total_emails: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sent_emails: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_emails: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    def __repr__(self) -> str:
        return f"<EmailBatch {self.name} ({self.status.value}) {self.sent_emails}/{self.total_emails}>"
