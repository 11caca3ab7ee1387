"""Celery tasks for the notification engine: delivery, dispatch, goes-live and batches."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

from rlly.core.config import settings
from rlly.core.database import async_session_maker, engine
from rlly.services.template_registry import TemplateRegistry
from rlly.workers.celery_app import BaseTask, OneShotTask, celery_app

logger = logging.getLogger(__name__)


def _run_async[T](coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a fresh event loop, disposing DB connections after.

    Each Celery prefork worker creates a new event loop per task. asyncpg connections
    are bound to the loop that created them, so pooled connections from a previous
    (closed) loop raise RuntimeError("Event loop is closed") when reused.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(engine.dispose())
        loop.close()


def _build_registry() -> TemplateRegistry:
    return TemplateRegistry(timezone=ZoneInfo(settings.notification_timezone))


# ---------------------------------------------------------------------------
# Delayed-send queue
# ---------------------------------------------------------------------------


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.notifications.deliver_scheduled_email",
    base=OneShotTask,
    bind=True,
)
def deliver_scheduled_email(self: OneShotTask, scheduled_email_id: str) -> dict[str, Any]:  # noqa: ARG001
    """Attempt delivery of one scheduled email."""
    return _run_async(_deliver_scheduled_email_async(UUID(scheduled_email_id)))


async def _deliver_scheduled_email_async(scheduled_email_id: UUID) -> dict[str, Any]:
    """Async implementation of single-email delivery."""
    from rlly.services.email_dispatcher import EmailDispatcher

    registry = _build_registry()
    try:
        async with async_session_maker() as session:
            dispatcher = EmailDispatcher(session, registry)
            outcome = await dispatcher.deliver(scheduled_email_id)
    finally:
        registry.close()
    return {"status": outcome, "scheduled_email_id": str(scheduled_email_id)}


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.notifications.dispatch_due_emails",
    base=BaseTask,
    bind=True,
)
def dispatch_due_emails(self: BaseTask) -> dict[str, Any]:  # noqa: ARG001
    """Periodic task: expire stale emails and deliver every due one."""
    return _run_async(_dispatch_due_emails_async())


async def _dispatch_due_emails_async() -> dict[str, Any]:
    """Async implementation of the dispatch pass."""
    from rlly.services.batch_service import BatchService
    from rlly.services.email_dispatcher import EmailDispatcher

    registry = _build_registry()
    try:
        async with async_session_maker() as session:
            dispatcher = EmailDispatcher(session, registry)
            result = await dispatcher.run_due()
            batches_finalized = await BatchService(session, registry).finalize_stuck()
    finally:
        registry.close()
    return {"status": "completed", **result.model_dump(), "batches_finalized": batches_finalized}


# ---------------------------------------------------------------------------
# Event goes live
# ---------------------------------------------------------------------------


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.notifications.send_event_goes_live_notifications",
    base=OneShotTask,
    bind=True,
)
def send_event_goes_live_notifications(self: OneShotTask, event_id: str) -> dict[str, Any]:  # noqa: ARG001
    """Fires at an event's start time and notifies its attendees."""
    return _run_async(_send_event_goes_live_notifications_async(UUID(event_id)))


async def _send_event_goes_live_notifications_async(event_id: UUID) -> dict[str, Any]:
    """Async implementation of the goes-live dispatch."""
    from rlly.services.event_scheduler import EventScheduler

    registry = _build_registry()
    try:
        async with async_session_maker() as session:
            scheduler = EventScheduler(session, registry)
            triggered = await scheduler.dispatch_goes_live(event_id)
    finally:
        registry.close()
    return {"status": "completed", "event_id": str(event_id), "triggered": triggered}


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.notifications.process_email_batch",
    base=OneShotTask,
    bind=True,
)
def process_email_batch(self: OneShotTask, batch_id: str) -> dict[str, Any]:  # noqa: ARG001
    """Send a scheduled batch."""
    return _run_async(_process_email_batch_async(UUID(batch_id)))


async def _process_email_batch_async(batch_id: UUID) -> dict[str, Any]:
    """Async implementation of batch processing."""
    from rlly.services.batch_service import BatchService

    registry = _build_registry()
    try:
        async with async_session_maker() as session:
            service = BatchService(session, registry)
            batch = await service.process_batch(batch_id)
    finally:
        registry.close()

    if batch is None:
        return {"status": "skipped", "batch_id": str(batch_id)}
    return {
        "status": batch.status.value,
        "batch_id": str(batch_id),
        "sent": batch.sent_emails,
        "failed": batch.failed_emails,
    }
