"""EmailEvent model and the event taxonomy that drives notification rules."""

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rlly.models.base import Base, JSONType, UTCDateTime


class EventType(str, enum.Enum):
    """Domain occurrences that can trigger notification rules."""

    # User
    USER_SIGNUP = "user_signup"
    # Event attendees
    EVENT_INVITATION = "event_invitation"
    EVENT_REMINDER = "event_reminder"
    EVENT_BLAST = "event_blast"
    EVENT_UPDATE = "event_update"
    FEEDBACK_REQUEST = "feedback_request"
    EVENT_GOES_LIVE = "event_goes_live"
    # Event hosts
    GUEST_REGISTRATION = "guest_registration"
    FEEDBACK_RESPONSE = "feedback_response"
    EVENT_RSVP = "event_rsvp"
    # Calendar managers and subscribers
    NEW_MEMBER = "new_member"
    EVENT_SUBMISSION = "event_submission"
    NEW_EVENT_NOTIFICATION = "new_event_notification"
    CALENDAR_INVITATION = "calendar_invitation"
    # Product
    PRODUCT_UPDATE = "product_update"


# Notification preference category per event type
NOTIFICATION_CATEGORIES: dict[EventType, str] = {
    EventType.USER_SIGNUP: "product_updates",
    EventType.EVENT_INVITATION: "event_invitations",
    EventType.EVENT_REMINDER: "event_reminders",
    EventType.EVENT_BLAST: "event_blasts",
    EventType.EVENT_UPDATE: "event_updates",
    EventType.FEEDBACK_REQUEST: "feedback_requests",
    EventType.EVENT_GOES_LIVE: "event_reminders",
    EventType.GUEST_REGISTRATION: "guest_registrations",
    EventType.FEEDBACK_RESPONSE: "feedback_responses",
    EventType.EVENT_RSVP: "guest_registrations",
    EventType.NEW_MEMBER: "new_members",
    EventType.EVENT_SUBMISSION: "event_submissions",
    EventType.NEW_EVENT_NOTIFICATION: "event_updates",
    EventType.CALENDAR_INVITATION: "event_invitations",
    EventType.PRODUCT_UPDATE: "product_updates",
}

DEFAULT_NOTIFICATION_CATEGORY = "product_updates"


def notification_category(event_type: EventType | str) -> str:
    """Map an event type to the preference category that governs it."""
    try:
        return NOTIFICATION_CATEGORIES[EventType(event_type)]
    except ValueError:
        return DEFAULT_NOTIFICATION_CATEGORY


class EmailEvent(Base):
    """A recorded domain occurrence awaiting (or done with) rule evaluation.

    ``processed`` flips from False to True exactly once, when the rule engine
    has evaluated the event.
    """

    __tablename__ = "email_events"
    __table_args__ = (
        Index("ix_email_events_type_processed", "type", "processed"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        default=dict,
        nullable=False,
    )
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    processed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Caller-supplied context (source mutation, request id, ...)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        default=dict,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<EmailEvent {self.type} user={self.user_id} processed={self.processed}>"
