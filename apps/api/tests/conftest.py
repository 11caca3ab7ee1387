"""Pytest configuration and fixtures for the Rlly notifications test suite.

Provides:
- A throwaway SQLite database per test, created from the model metadata
- Mock Redis (fakeredis)
- Disabled rate limiting
- A template registry on the real email templates
- Mocked Celery tasks and mail provider
- Model factory fixtures for User, Event, EventAttendee, EmailTemplate,
  EmailRule and ScheduledEmail
"""

from collections.abc import AsyncGenerator, Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import fakeredis.aioredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from rlly.core.database import get_async_session
from rlly.core.deps import get_db, get_redis, get_template_registry
from rlly.core.rate_limit import limiter
from rlly.main import app
from rlly.models import (
    AttendeeStatus,
    EmailRule,
    EmailTemplate,
    Event,
    EventAttendee,
    ScheduledEmail,
    ScheduleStatus,
    TemplateCategory,
    User,
)
from rlly.models.base import Base
from rlly.services.email_engine import DEFAULT_TEMPLATES
from rlly.services.email_service import EmailService
from rlly.services.template_registry import TemplateRegistry

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False

# ---------------------------------------------------------------------------
# Per-test database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory bound to a fresh SQLite file with all tables created.

    A file (not ``:memory:``) so every connection sees the same database;
    NullPool so no connection outlives the test's event loop.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        future=True,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session for test setup (factory fixtures) and service-level tests."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Fake Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


# ---------------------------------------------------------------------------
# Template registry
# ---------------------------------------------------------------------------


@pytest.fixture
def registry() -> Generator[TemplateRegistry, None, None]:
    """Registry over the shipped email templates."""
    reg = TemplateRegistry()
    yield reg
    reg.close()


# ---------------------------------------------------------------------------
# Client (overrides DB, Redis, template registry)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    fake_redis: fakeredis.aioredis.FakeRedis,
    registry: TemplateRegistry,
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with all dependencies overridden."""

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    async def _override_redis() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
        yield fake_redis

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_db] = _override_session
    app.dependency_overrides[get_redis] = _override_redis
    app.dependency_overrides[get_template_registry] = lambda: registry

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Lightweight client (no DB, for stateless endpoint tests)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Celery & mail mocks
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_celery_notification_tasks() -> Generator[dict[str, MagicMock], None, None]:
    """Mock the notification Celery tasks so nothing is enqueued.

    Services import tasks lazily from the tasks module, so patching the
    module attributes is enough.
    """
    with (
        patch("rlly.workers.tasks.notifications.deliver_scheduled_email") as mock_deliver,
        patch("rlly.workers.tasks.notifications.send_event_goes_live_notifications") as mock_goes_live,
        patch("rlly.workers.tasks.notifications.process_email_batch") as mock_batch,
    ):
        yield {
            "deliver_scheduled_email": mock_deliver,
            "send_event_goes_live_notifications": mock_goes_live,
            "process_email_batch": mock_batch,
        }


@pytest.fixture
def mock_email_service() -> MagicMock:
    """EmailService stand-in whose send_email succeeds with a fixed id."""
    service = MagicMock(spec=EmailService)
    service.send_email = AsyncMock(return_value="resend_test_id")
    return service


@pytest.fixture
def mock_send_email() -> Generator[AsyncMock, None, None]:
    """Patch EmailService.send_email for code paths that build their own service."""
    with patch.object(EmailService, "send_email", new_callable=AsyncMock) as mock_send:
        mock_send.return_value = "resend_test_id"
        yield mock_send


@pytest.fixture
def mock_async_session_maker(
    session_factory: async_sessionmaker[AsyncSession],
) -> Generator[async_sessionmaker[AsyncSession], None, None]:
    """Point the Celery tasks module at the test database."""
    with patch("rlly.workers.tasks.notifications.async_session_maker", session_factory):
        yield session_factory


# ---------------------------------------------------------------------------
# Model Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def user_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates User instances."""
    counter = {"n": 0}

    async def _create(
        *,
        name: str | None = "Sam Rivera",
        email: str | None = "sam@example.com",
        username: str | None = None,
        segments: list[str] | None = None,
        created_at: datetime | None = None,
    ) -> User:
        counter["n"] += 1
        user = User(
            name=name,
            email=email,
            username=username or f"user{counter['n']}",
            rlly_id=f"rlly_{counter['n']}",
            segments=segments or [],
        )
        if created_at is not None:
            user.created_at = created_at
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create


@pytest.fixture
def event_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates Event instances."""

    async def _create(
        *,
        name: str = "Rooftop Social",
        start_time: datetime | None = None,
        location: str | None = "123 Main St",
        is_virtual: bool = False,
        virtual_link: str | None = None,
        is_public: bool = True,
        capacity: int | None = 50,
        host_id: UUID | None = None,
    ) -> Event:
        event = Event(
            name=name,
            start_time=start_time or datetime.now(UTC) + timedelta(hours=1),
            location=location,
            is_virtual=is_virtual,
            virtual_link=virtual_link,
            is_public=is_public,
            capacity=capacity,
            host_id=host_id,
        )
        db_session.add(event)
        await db_session.commit()
        await db_session.refresh(event)
        return event

    return _create


@pytest.fixture
def attendee_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates EventAttendee instances."""

    async def _create(
        *,
        event_id: UUID,
        user_id: UUID,
        status: AttendeeStatus = AttendeeStatus.GOING,
    ) -> EventAttendee:
        attendee = EventAttendee(event_id=event_id, user_id=user_id, status=status)
        db_session.add(attendee)
        await db_session.commit()
        await db_session.refresh(attendee)
        return attendee

    return _create


@pytest.fixture
def template_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates EmailTemplate rows, defaulting to a shipped template."""

    async def _create(
        *,
        template_id: str = "event_goes_live",
        version: int = 1,
        active: bool = True,
        **overrides: Any,
    ) -> EmailTemplate:
        defaults = next(
            (dict(t) for t in DEFAULT_TEMPLATES if t["template_id"] == template_id),
            {
                "name": template_id.replace("_", " ").title(),
                "subject": "Hello {{ user_name }}",
                "component_path": "event_goes_live",
                "variables": ["email", "user_name", "event_name", "event_date", "event_url"],
                "category": TemplateCategory.SYSTEM,
            },
        )
        defaults.update(overrides)
        defaults.pop("template_id", None)
        template = EmailTemplate(template_id=template_id, version=version, active=active, **defaults)
        db_session.add(template)
        await db_session.commit()
        await db_session.refresh(template)
        return template

    return _create


@pytest.fixture
def rule_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates EmailRule instances."""

    async def _create(
        *,
        trigger: str = "event_goes_live",
        template_id: str = "event_goes_live",
        conditions: dict[str, Any] | None = None,
        delay_minutes: int = 0,
        priority: int | None = 1,
        active: bool = True,
        max_attempts: int | None = None,
    ) -> EmailRule:
        rule = EmailRule(
            trigger=trigger,
            template_id=template_id,
            conditions=conditions,
            delay_minutes=delay_minutes,
            priority=priority,
            active=active,
            max_attempts=max_attempts,
        )
        db_session.add(rule)
        await db_session.commit()
        await db_session.refresh(rule)
        return rule

    return _create


@pytest.fixture
def goes_live_data() -> dict[str, Any]:
    """A valid event_goes_live payload."""
    return {
        "email": "sam@example.com",
        "user_name": "Sam",
        "event_id": "evt_1",
        "event_name": "Rooftop Social",
        "event_date": "2026-01-15T19:00:00+00:00",
        "event_location": "123 Main St",
        "event_url": "https://rlly.live/event/evt_1",
        "is_virtual": False,
        "virtual_link": None,
    }


@pytest.fixture
def scheduled_email_factory(
    db_session: AsyncSession,
    goes_live_data: dict[str, Any],
) -> Callable[..., Any]:
    """Factory that creates ScheduledEmail instances."""

    async def _create(
        *,
        user_id: UUID,
        template_id: str = "event_goes_live",
        event_type: str | None = "event_goes_live",
        event_data: dict[str, Any] | None = None,
        scheduled_for: datetime | None = None,
        expires_at: datetime | None = None,
        status: ScheduleStatus = ScheduleStatus.PENDING,
        attempts: int = 0,
        max_attempts: int = 3,
        rule_id: UUID | None = None,
        last_attempt_at: datetime | None = None,
    ) -> ScheduledEmail:
        when = scheduled_for or datetime.now(UTC) - timedelta(minutes=1)
        scheduled = ScheduledEmail(
            user_id=user_id,
            rule_id=rule_id,
            template_id=template_id,
            event_type=event_type,
            event_data=event_data if event_data is not None else dict(goes_live_data),
            scheduled_for=when,
            expires_at=expires_at or when + timedelta(hours=24),
            status=status,
            attempts=attempts,
            max_attempts=max_attempts,
            last_attempt_at=last_attempt_at,
        )
        db_session.add(scheduled)
        await db_session.commit()
        await db_session.refresh(scheduled)
        return scheduled

    return _create


# ---------------------------------------------------------------------------
# Convenience fixtures (pre-built models)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def user(user_factory: Callable[..., Any]) -> User:
    """A default user with an email address."""
    return await user_factory()


@pytest_asyncio.fixture
async def goes_live_template(template_factory: Callable[..., Any]) -> EmailTemplate:
    """The shipped event_goes_live template."""
    return await template_factory(template_id="event_goes_live")
