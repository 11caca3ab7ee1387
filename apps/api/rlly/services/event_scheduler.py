"""Time-triggered "event goes live" notifications.

Scheduling registers one deferred Celery task at the event's start time.
Attendees are re-read when the task fires, so guests who joined or left in
the meantime are handled correctly.
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.config import settings
from rlly.core.exceptions import EventNotFoundError, NotificationError
from rlly.models.email_event import EventType
from rlly.models.event import Event, EventAttendee
from rlly.models.user import User
from rlly.schemas.scheduling import GoesLiveScheduleResponse
from rlly.services.email_engine import EmailEngineService
from rlly.services.template_registry import TemplateRegistry

logger = logging.getLogger(__name__)


def event_url(event_id: UUID) -> str:
    return f"{settings.app_url}/event/{event_id}"


class EventScheduler:
    """Schedules and dispatches goes-live notifications for one event at a time."""

    def __init__(self, db: AsyncSession, registry: TemplateRegistry) -> None:
        self.db = db
        self.engine = EmailEngineService(db, registry)

    async def _get_event(self, event_id: UUID) -> Event | None:
        return await self.db.get(Event, event_id)

    async def _get_attendees(self, event_id: UUID) -> list[tuple[EventAttendee, User]]:
        stmt = (
            select(EventAttendee, User)
            .join(User, User.id == EventAttendee.user_id)
            .where(EventAttendee.event_id == event_id)
            .order_by(EventAttendee.created_at)
        )
        result = await self.db.execute(stmt)
        return [(attendee, user) for attendee, user in result.all()]

    async def schedule_goes_live_notifications(
        self,
        event_id: UUID,
        now: datetime | None = None,
    ) -> GoesLiveScheduleResponse:
        """Register a deferred dispatch at the event's start time.

        Events that already started are never backfilled: nothing is
        registered and ``callback_registered`` is False.
        """
        event = await self._get_event(event_id)
        if event is None:
            raise EventNotFoundError(event_id)

        now = now or datetime.now(UTC)
        attendees = await self._get_attendees(event_id)

        registered = False
        if event.start_time > now:
            from rlly.workers.tasks.notifications import send_event_goes_live_notifications

            send_event_goes_live_notifications.apply_async(
                args=[str(event_id)],
                eta=event.start_time,
            )
            registered = True
            logger.info(
                "Goes-live notifications scheduled: event=%s start=%s attendees=%d",
                event_id,
                event.start_time.isoformat(),
                len(attendees),
            )
        else:
            logger.info(
                "Goes-live notifications not scheduled, event already started: event=%s start=%s",
                event_id,
                event.start_time.isoformat(),
            )

        return GoesLiveScheduleResponse(
            event_id=event_id,
            scheduled=len(attendees),
            event_start_time=event.start_time,
            callback_registered=registered,
        )

    async def dispatch_goes_live(self, event_id: UUID) -> int:
        """Trigger ``event_goes_live`` for every attendee with an email address.

        Returns the number of triggers emitted. A deleted event abandons the
        dispatch without raising.
        """
        event = await self._get_event(event_id)
        if event is None:
            logger.warning("Goes-live dispatch abandoned, event no longer exists: event=%s", event_id)
            return 0

        # Read everything up front: a failed trigger rolls back and expires the session
        event_fields = {
            "event_id": str(event.id),
            "event_name": event.name,
            "event_date": event.start_time.isoformat(),
            "event_location": event.location,
            "event_url": event_url(event.id),
            "is_virtual": event.is_virtual,
            "virtual_link": event.virtual_link,
            "is_public": event.is_public,
            "capacity": event.capacity,
        }
        recipients = [
            (user.id, user.email, user.display_name)
            for _attendee, user in await self._get_attendees(event_id)
            if user.email
        ]

        triggered = 0
        for user_id, email, user_name in recipients:
            data = {"email": email, "user_name": user_name, **event_fields}
            try:
                await self.engine.trigger_email_event(
                    EventType.EVENT_GOES_LIVE,
                    user_id,
                    data,
                    metadata={"source": "event_goes_live", "event_id": str(event_id)},
                )
            except NotificationError:
                logger.exception(
                    "Goes-live trigger failed: event=%s user=%s", event_id, user_id
                )
                continue
            triggered += 1

        logger.info("Goes-live dispatch complete: event=%s triggered=%d", event_id, triggered)
        return triggered
