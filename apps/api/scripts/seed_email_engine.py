"""Seed script for local notification testing.

Creates:
- the shipped email templates and trigger rules (idempotent)
- 1 host and 2 attendees with fixed ids
- 1 event starting in 10 minutes, so the goes-live task fires soon
- 1 opted-out preference (Bob does not want event reminders)

Usage:
    cd apps/api && uv run python -m scripts.seed_email_engine
"""

import asyncio
import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.database import async_session_maker
from rlly.models.event import AttendeeStatus, Event, EventAttendee
from rlly.models.notification_preference import NotificationChannel, NotificationPreference
from rlly.models.user import User
from rlly.services.email_engine import EmailEngineService
from rlly.services.event_scheduler import EventScheduler
from rlly.services.template_registry import TemplateRegistry

# Fixed UUIDs for easy reference
HOST_ID = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000001")
ALICE_ID = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000002")
BOB_ID = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000003")
EVENT_ID = uuid.UUID("bbbbbbbb-0000-0000-0000-000000000001")


async def seed(session: AsyncSession, registry: TemplateRegistry) -> tuple[int, int]:
    now = datetime.now(UTC)

    # ── Cleanup existing seed data ──────────────────────────────────────
    params = {"u1": str(HOST_ID), "u2": str(ALICE_ID), "u3": str(BOB_ID)}
    await session.execute(text("DELETE FROM events WHERE id = :e"), {"e": str(EVENT_ID)})
    for table in ["scheduled_emails", "email_events", "notification_preferences"]:
        await session.execute(
            text(f"DELETE FROM {table} WHERE user_id IN (:u1, :u2, :u3)"),
            params,
        )
    await session.execute(text("DELETE FROM users WHERE id IN (:u1, :u2, :u3)"), params)
    await session.flush()

    # ── Templates and rules ─────────────────────────────────────────────
    defaults = await EmailEngineService(session, registry).setup_defaults()

    # ── Users ───────────────────────────────────────────────────────────
    session.add_all(
        [
            User(id=HOST_ID, username="seed-host", name="Harper Host", email="host@test.com"),
            User(
                id=ALICE_ID,
                username="seed-alice",
                name="Alice",
                email="alice@test.com",
                segments=["early_adopter"],
            ),
            User(id=BOB_ID, username="seed-bob", name="Bob", email="bob@test.com"),
        ]
    )
    await session.flush()

    # ── Event and attendees ─────────────────────────────────────────────
    event = Event(
        id=EVENT_ID,
        name="Seed Rooftop Social",
        start_time=now + timedelta(minutes=10),
        end_time=now + timedelta(hours=2),
        location="123 Main St",
        is_public=True,
        capacity=50,
        host_id=HOST_ID,
    )
    session.add(event)
    session.add_all(
        [
            EventAttendee(event_id=EVENT_ID, user_id=ALICE_ID, status=AttendeeStatus.GOING),
            EventAttendee(event_id=EVENT_ID, user_id=BOB_ID, status=AttendeeStatus.MAYBE),
        ]
    )

    # ── Opt-out (for skip testing) ──────────────────────────────────────
    session.add(
        NotificationPreference(
            user_id=BOB_ID,
            category="event_reminders",
            channel=NotificationChannel.OFF,
        )
    )
    await session.commit()

    await EventScheduler(session, registry).schedule_goes_live_notifications(EVENT_ID)
    return defaults.templates_created, defaults.rules_created


async def main() -> None:
    registry = TemplateRegistry()
    try:
        async with async_session_maker() as session:
            templates_created, rules_created = await seed(session, registry)
    finally:
        registry.close()

    print("=" * 60)
    print("  Notification seed data created successfully!")
    print("=" * 60)
    print()
    print(f"  Templates created:   {templates_created}")
    print(f"  Rules created:       {rules_created}")
    print()
    print(f"  Host:                {HOST_ID}")
    print(f"  Alice (going):       {ALICE_ID}")
    print(f"  Bob (maybe, no reminders): {BOB_ID}")
    print(f"  Event (starts in 10 min): {EVENT_ID}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
