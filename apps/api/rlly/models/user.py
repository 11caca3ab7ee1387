"""User model (read-only collaborator owned by the web app)."""

from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rlly.models.base import Base, JSONType

if TYPE_CHECKING:
    from rlly.models.notification_preference import NotificationPreference


class User(Base):
    """A Rlly user.

    Profiles are managed elsewhere; the notification engine only looks users
    up by id (or the ``by_username`` / ``by_rllyId`` indexes) to resolve a
    display name, an email address, and the segments used by rule conditions.
    """

    __tablename__ = "users"

    username: Mapped[str | None] = mapped_column(
        String(100),
        unique=True,
        nullable=True,
        index=True,
    )
    rlly_id: Mapped[str | None] = mapped_column(
        String(100),
        unique=True,
        nullable=True,
        index=True,
    )
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Marketing/lifecycle segments, e.g. ["host", "early_adopter"]
    segments: Mapped[list[str]] = mapped_column(
        JSONType,
        default=list,
        nullable=False,
    )

    # Relationships
    notification_preferences: Mapped[list["NotificationPreference"]] = relationship(
        "NotificationPreference",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def display_name(self) -> str:
        """Name shown in emails, falling back to the username."""
        return self.name or self.username or "User"

    def __repr__(self) -> str:
        return f"<User {self.username or self.id}>"
