"""User notification preference endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.deps import get_db
from rlly.schemas.preferences import NotificationPreferences, NotificationPreferenceUpdate
from rlly.services.preference_service import PreferenceService

router = APIRouter()


@router.get("/{user_id}/preferences", response_model=NotificationPreferences)
async def get_preferences(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> NotificationPreferences:
    """Channel per notification category. Unset categories are email."""
    service = PreferenceService(db)
    return await service.get_preferences(user_id)


@router.put("/{user_id}/preferences", response_model=NotificationPreferences)
async def update_preference(
    user_id: UUID,
    data: NotificationPreferenceUpdate,
    db: AsyncSession = Depends(get_db),
) -> NotificationPreferences:
    """Set the channel for one category."""
    service = PreferenceService(db)
    await service.set_channel(user_id, data.category, data.channel)
    await db.commit()
    return await service.get_preferences(user_id)
