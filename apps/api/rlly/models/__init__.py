"""SQLAlchemy models."""

from rlly.models.base import Base
from rlly.models.email_batch import BatchStatus, EmailBatch
from rlly.models.email_event import EmailEvent, EventType, notification_category
from rlly.models.email_metric import EmailMetric, RuleMetric
from rlly.models.email_rule import EmailRule
from rlly.models.email_template import EmailTemplate, TemplateCategory
from rlly.models.event import AttendeeStatus, Event, EventAttendee
from rlly.models.notification_preference import NotificationChannel, NotificationPreference
from rlly.models.scheduled_email import TERMINAL_STATUSES, ScheduledEmail, ScheduleStatus
from rlly.models.user import User

__all__ = [
    # Base
    "Base",
    # Collaborator records
    "User",
    "Event",
    "EventAttendee",
    "AttendeeStatus",
    "NotificationPreference",
    "NotificationChannel",
    # Event taxonomy
    "EmailEvent",
    "EventType",
    "notification_category",
    # Rules & templates
    "EmailRule",
    "EmailTemplate",
    "TemplateCategory",
    # Delayed-send queue
    "ScheduledEmail",
    "ScheduleStatus",
    "TERMINAL_STATUSES",
    # Batches
    "EmailBatch",
    "BatchStatus",
    # Metrics
    "EmailMetric",
    "RuleMetric",
]
