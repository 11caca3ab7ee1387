"""Typed payloads for every EventType, plus trigger request/response schemas.

Each payload model carries a literal ``type`` discriminator, and
``EventPayload`` is the tagged union over all of them. Callers pass the event
type and a plain dict; ``parse_event_payload`` picks the variant.
"""

from datetime import datetime
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import Field, TypeAdapter, ValidationError

from rlly.core.exceptions import PayloadValidationError
from rlly.models.email_event import EventType
from rlly.schemas.common import BaseSchema

RsvpStatus = Literal["going", "maybe", "not_going"]


class PayloadBase(BaseSchema):
    """Fields every notification payload carries."""

    email: str = Field(..., min_length=3, max_length=255)


class EventAttributes(BaseSchema):
    """Optional event attributes consulted by rule conditions."""

    is_public: bool | None = None
    capacity: int | None = Field(default=None, ge=0)


# --- User ------------------------------------------------------------------


class UserSignupPayload(PayloadBase):
    type: Literal["user_signup"] = "user_signup"
    user_name: str
    profile_url: str


# --- Event attendees -------------------------------------------------------


class EventInvitationPayload(PayloadBase, EventAttributes):
    type: Literal["event_invitation"] = "event_invitation"
    invited_name: str
    inviter_name: str
    event_id: str
    event_name: str
    event_date: datetime
    event_location: str | None = None
    message: str | None = None
    invitation_url: str


class EventReminderPayload(PayloadBase, EventAttributes):
    type: Literal["event_reminder"] = "event_reminder"
    user_name: str
    event_id: str
    event_name: str
    event_date: datetime
    event_location: str | None = None
    event_url: str
    hours_until_event: float = Field(..., ge=0)


class EventBlastPayload(PayloadBase, EventAttributes):
    type: Literal["event_blast"] = "event_blast"
    user_name: str
    event_id: str
    event_name: str
    host_name: str
    message: str
    event_url: str


class EventUpdatePayload(PayloadBase, EventAttributes):
    type: Literal["event_update"] = "event_update"
    user_name: str
    event_id: str
    event_name: str
    change_type: str
    change_description: str
    event_url: str


class FeedbackRequestPayload(PayloadBase, EventAttributes):
    type: Literal["feedback_request"] = "feedback_request"
    user_name: str
    event_id: str
    event_name: str
    feedback_url: str
    host_name: str


class EventGoesLivePayload(PayloadBase, EventAttributes):
    type: Literal["event_goes_live"] = "event_goes_live"
    user_name: str
    event_id: str
    event_name: str
    event_date: datetime
    event_location: str | None = None
    event_url: str
    is_virtual: bool = False
    virtual_link: str | None = None


# --- Event hosts -----------------------------------------------------------


class GuestRegistrationPayload(PayloadBase, EventAttributes):
    type: Literal["guest_registration"] = "guest_registration"
    host_name: str
    event_id: str
    event_name: str
    guest_name: str
    guest_email: str
    rsvp_status: RsvpStatus
    guest_count: int = Field(default=0, ge=0)
    manage_event_url: str


class FeedbackResponsePayload(PayloadBase, EventAttributes):
    type: Literal["feedback_response"] = "feedback_response"
    host_name: str
    event_id: str
    event_name: str
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = None
    respondent_name: str
    view_feedback_url: str


class EventRsvpPayload(PayloadBase, EventAttributes):
    type: Literal["event_rsvp"] = "event_rsvp"
    host_name: str
    attendee_name: str
    event_id: str | None = None
    event_name: str
    rsvp_status: RsvpStatus
    event_url: str


# --- Calendar managers & subscribers ---------------------------------------


class NewMemberPayload(PayloadBase):
    type: Literal["new_member"] = "new_member"
    manager_name: str
    calendar_id: str
    calendar_name: str
    member_name: str
    member_email: str
    manage_calendar_url: str


class EventSubmissionPayload(PayloadBase):
    type: Literal["event_submission"] = "event_submission"
    manager_name: str
    calendar_id: str
    calendar_name: str
    event_name: str
    submitter_name: str
    event_date: datetime
    approve_url: str
    reject_url: str
    review_url: str


class NewEventNotificationPayload(PayloadBase, EventAttributes):
    type: Literal["new_event_notification"] = "new_event_notification"
    subscriber_name: str
    host_name: str
    event_id: str | None = None
    event_name: str
    event_date: datetime
    calendar_name: str
    event_url: str


class CalendarInvitationPayload(PayloadBase):
    type: Literal["calendar_invitation"] = "calendar_invitation"
    inviter_name: str
    calendar_name: str
    join_url: str


# --- Product ---------------------------------------------------------------


class ProductUpdatePayload(PayloadBase):
    type: Literal["product_update"] = "product_update"
    user_name: str
    update_title: str
    update_description: str
    feature_highlights: list[str] = Field(default_factory=list)
    learn_more_url: str
    unsubscribe_url: str | None = None


EventPayload = Annotated[
    UserSignupPayload
    | EventInvitationPayload
    | EventReminderPayload
    | EventBlastPayload
    | EventUpdatePayload
    | FeedbackRequestPayload
    | EventGoesLivePayload
    | GuestRegistrationPayload
    | FeedbackResponsePayload
    | EventRsvpPayload
    | NewMemberPayload
    | EventSubmissionPayload
    | NewEventNotificationPayload
    | CalendarInvitationPayload
    | ProductUpdatePayload,
    Field(discriminator="type"),
]

_payload_adapter: TypeAdapter[EventPayload] = TypeAdapter(EventPayload)


def parse_event_payload(event_type: EventType | str, data: dict[str, Any]) -> EventPayload:
    """Validate ``data`` against the payload variant for ``event_type``.

    Raises PayloadValidationError when the type is unknown or the data does
    not fit the variant.
    """
    type_value = event_type.value if isinstance(event_type, EventType) else str(event_type)
    try:
        return _payload_adapter.validate_python({**data, "type": type_value})
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'data'}: {err['msg']}"
            for err in exc.errors()
        )
        raise PayloadValidationError(
            f"Invalid payload for event type {type_value!r}: {problems}"
        ) from exc


def payload_to_data(payload: EventPayload) -> dict[str, Any]:
    """Serialise a payload to the JSON-safe dict stored on EmailEvent.data."""
    return payload.model_dump(mode="json", exclude={"type"})


# --- API schemas -----------------------------------------------------------


class TriggerEmailEventRequest(BaseSchema):
    """Inbound notification trigger."""

    event_type: EventType
    user_id: UUID
    data: dict[str, Any]
    metadata: dict[str, Any] | None = None


class TriggerEmailEventResponse(BaseSchema):
    """Result of processing a trigger."""

    event_id: UUID
    matched_rules: int
    scheduled_email_ids: list[UUID]
    skipped_reason: str | None = None


class EmailEventResponse(BaseSchema):
    """API response for a stored email event."""

    id: UUID
    user_id: UUID
    type: str
    data: dict[str, Any]
    timestamp: datetime
    processed: bool
    processed_at: datetime | None
    created_at: datetime
