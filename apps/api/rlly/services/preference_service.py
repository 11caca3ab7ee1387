"""Notification preferences and signed unsubscribe links."""

import logging
from uuid import UUID

import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.config import settings
from rlly.core.exceptions import UserNotFoundError
from rlly.models.notification_preference import NotificationChannel, NotificationPreference
from rlly.models.user import User
from rlly.schemas.preferences import NOTIFICATION_CATEGORY_NAMES, NotificationPreferences

logger = logging.getLogger(__name__)


def build_unsubscribe_token(user_id: UUID, category: str) -> str:
    return jwt.encode(
        {"user_id": str(user_id), "category": category},
        settings.secret_key,
        algorithm="HS256",
    )


def build_unsubscribe_url(user_id: UUID, category: str) -> str:
    """Generate a signed unsubscribe URL for one category."""
    token = build_unsubscribe_token(user_id, category)
    return f"{settings.api_url}{settings.api_v1_prefix}/notifications/unsubscribe?token={token}"


def decode_unsubscribe_token(token: str) -> tuple[UUID, str]:
    """Return ``(user_id, category)``.

    Raises jwt.InvalidTokenError, KeyError or ValueError for a bad token.
    """
    payload = jwt.decode(token, settings.secret_key, algorithms=["HS256"])
    category = payload["category"]
    if category not in NOTIFICATION_CATEGORY_NAMES:
        raise ValueError(f"Unknown notification category: {category!r}")
    return UUID(payload["user_id"]), category


class PreferenceService:
    """Reads and writes per-category notification channels."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _get_user(self, user_id: UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def get_channel(self, user_id: UUID, category: str) -> NotificationChannel:
        """Channel for one category. Defaults to email."""
        pref = (
            await self.db.execute(
                select(NotificationPreference).where(
                    NotificationPreference.user_id == user_id,
                    NotificationPreference.category == category,
                )
            )
        ).scalar_one_or_none()
        return pref.channel if pref else NotificationChannel.EMAIL

    async def is_opted_out(self, user_id: UUID, category: str) -> bool:
        return await self.get_channel(user_id, category) == NotificationChannel.OFF

    async def get_preferences(self, user_id: UUID) -> NotificationPreferences:
        await self._get_user(user_id)
        result = await self.db.execute(
            select(NotificationPreference).where(NotificationPreference.user_id == user_id)
        )
        stored = {pref.category: pref.channel for pref in result.scalars().all()}
        return NotificationPreferences(
            preferences={
                category: stored.get(category, NotificationChannel.EMAIL)
                for category in NOTIFICATION_CATEGORY_NAMES
            }
        )

    async def set_channel(
        self,
        user_id: UUID,
        category: str,
        channel: NotificationChannel,
    ) -> NotificationPreference:
        """Upsert one category's channel. Caller commits."""
        await self._get_user(user_id)
        pref = (
            await self.db.execute(
                select(NotificationPreference).where(
                    NotificationPreference.user_id == user_id,
                    NotificationPreference.category == category,
                )
            )
        ).scalar_one_or_none()
        if pref is None:
            pref = NotificationPreference(user_id=user_id, category=category, channel=channel)
            self.db.add(pref)
        else:
            pref.channel = channel
        await self.db.flush()
        logger.info(
            "Notification preference updated: user=%s category=%s channel=%s",
            user_id,
            category,
            channel.value,
        )
        return pref

    async def unsubscribe(self, token: str) -> tuple[UUID, str]:
        """Turn off the category named in a signed token. Caller commits."""
        user_id, category = decode_unsubscribe_token(token)
        await self.set_channel(user_id, category, NotificationChannel.OFF)
        return user_id, category
