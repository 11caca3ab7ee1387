"""NotificationPreference model for per-category email opt-outs."""

import enum
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Enum, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rlly.models.base import Base

if TYPE_CHECKING:
    from rlly.models.user import User


class NotificationChannel(str, enum.Enum):
    """Delivery channel for a notification category."""

    EMAIL = "email"
    OFF = "off"


class NotificationPreference(Base):
    """A user's channel choice for one notification category.

    Missing rows mean the default (email).
    """

    __tablename__ = "notification_preferences"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "category", name="uq_notification_preferences_user_category"
        ),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    channel: Mapped[NotificationChannel] = mapped_column(
        Enum(
            NotificationChannel,
            name="notification_channel",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=NotificationChannel.EMAIL,
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="notification_preferences")

    def __repr__(self) -> str:
        return f"<NotificationPreference {self.category}={self.channel.value}>"
