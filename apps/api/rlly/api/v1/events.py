"""Event-triggered notification endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.deps import Registry, get_db
from rlly.schemas.scheduling import GoesLiveScheduleResponse
from rlly.services.event_scheduler import EventScheduler

router = APIRouter()


@router.post("/{event_id}/goes-live", response_model=GoesLiveScheduleResponse)
async def schedule_goes_live(
    event_id: UUID,
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> GoesLiveScheduleResponse:
    """Schedule "event goes live" emails for the event's attendees at its start time."""
    scheduler = EventScheduler(db, registry)
    return await scheduler.schedule_goes_live_notifications(event_id)
