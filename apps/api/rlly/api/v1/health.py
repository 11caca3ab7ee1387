"""Health check endpoints."""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.config import settings
from rlly.core.deps import Registry, get_db, get_redis
from rlly.models import ScheduledEmail, ScheduleStatus
from rlly.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _probe(name: str, check: Callable[[], Awaitable[Any]], checks: dict[str, str]) -> bool:
    try:
        await check()
    except Exception as e:
        logger.warning("Health check failed: %s: %s", name, e)
        checks[name] = f"unhealthy: {e}"
        return False
    checks[name] = "healthy"
    return True


@router.get("/health", response_model=HealthResponse)
async def health_check(
    registry: Registry,
    db: AsyncSession = Depends(get_db),
    redis_client: aioredis.Redis = Depends(get_redis),
) -> HealthResponse:
    """
    Health check endpoint.

    Probes the database and the Celery broker, confirms the template
    registry is loaded, and reports how many pending emails are already due.
    A growing ``due_emails`` means the Beat dispatcher is not keeping up.
    """
    checks: dict[str, str] = {}
    db_ok = await _probe("database", lambda: db.execute(text("SELECT 1")), checks)
    broker_ok = await _probe("redis", redis_client.ping, checks)

    if registry.components:
        checks["templates"] = "healthy"
    else:
        checks["templates"] = "unhealthy: no components registered"

    due_emails: int | None = None
    if db_ok:
        due_emails = await db.scalar(
            select(func.count())
            .select_from(ScheduledEmail)
            .where(
                ScheduledEmail.status == ScheduleStatus.PENDING,
                ScheduledEmail.scheduled_for <= datetime.now(UTC),
            )
        )

    healthy = db_ok and broker_ok and checks["templates"] == "healthy"
    return HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=settings.version,
        environment=settings.environment,
        checks=checks,
        due_emails=due_emails,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Liveness probe: the process is up."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    """
    Readiness probe for container orchestration.

    Triggers are persisted before anything else happens, so the API is only
    ready once the database answers.
    """
    await db.execute(text("SELECT 1"))
    return {"status": "ready"}
