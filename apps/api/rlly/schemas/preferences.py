"""Pydantic schemas for notification preferences."""

from pydantic import Field, field_validator

from rlly.models.email_event import NOTIFICATION_CATEGORIES
from rlly.models.notification_preference import NotificationChannel
from rlly.schemas.common import BaseSchema

NOTIFICATION_CATEGORY_NAMES = sorted(set(NOTIFICATION_CATEGORIES.values()))


class NotificationPreferences(BaseSchema):
    """Channel per category. Categories without a row default to email."""

    preferences: dict[str, NotificationChannel] = Field(default_factory=dict)


class NotificationPreferenceUpdate(BaseSchema):
    """Update one category's channel."""

    category: str
    channel: NotificationChannel

    @field_validator("category")
    @classmethod
    def _known_category(cls, category: str) -> str:
        if category not in NOTIFICATION_CATEGORY_NAMES:
            raise ValueError(f"Unknown notification category: {category!r}")
        return category
