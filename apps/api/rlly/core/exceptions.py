"""Domain exceptions for the notification engine.

Each exception carries the HTTP status and error code it maps to, so the
application-level handler in ``rlly.main`` can turn any of them into a
consistent JSON error response. Services raise these; workers catch the
ones that have a defined local recovery (not found at fire time, delivery
failures) and let everything else propagate.
"""

from collections.abc import Sequence

from fastapi import status


class NotificationError(Exception):
    """Base class for all notification engine errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "NOTIFICATION_ERROR"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


# --- NotFound -------------------------------------------------------------


class RecordNotFoundError(NotificationError):
    """A referenced record does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"


class EventNotFoundError(RecordNotFoundError):
    """The calendar event does not exist (or no longer exists)."""

    error_code = "EVENT_NOT_FOUND"

    def __init__(self, event_id: object) -> None:
        super().__init__(f"Event not found: {event_id}")
        self.event_id = event_id


class UserNotFoundError(RecordNotFoundError):
    """The user does not exist."""

    error_code = "USER_NOT_FOUND"

    def __init__(self, user_id: object) -> None:
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class TemplateNotFoundError(RecordNotFoundError):
    """No active template with the given id, or no registered component."""

    error_code = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str) -> None:
        super().__init__(f"Template not found or inactive: {template_id}")
        self.template_id = template_id


# --- ValidationFailure ----------------------------------------------------


class TemplateValidationError(NotificationError):
    """Template payload is missing required variables."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "TEMPLATE_VARIABLES_MISSING"

    def __init__(self, template_id: str, missing: Sequence[str]) -> None:
        self.template_id = template_id
        self.missing = list(missing)
        super().__init__(
            f"Template {template_id!r} is missing variables: {', '.join(self.missing)}"
        )


class PayloadValidationError(NotificationError):
    """Event payload does not match the shape declared for its event type."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "INVALID_EVENT_PAYLOAD"


# --- State machine --------------------------------------------------------


class InvalidStateError(NotificationError):
    """Requested transition is not allowed from the record's current status."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "INVALID_STATE"


# --- DeliveryFailure ------------------------------------------------------


class EmailDeliveryError(NotificationError):
    """Transient mail-provider failure. Retried by the dispatcher."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "DELIVERY_FAILED"
