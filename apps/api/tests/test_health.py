"""Tests for health check endpoints."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from httpx import AsyncClient

from rlly.models import ScheduleStatus, User


@pytest.mark.asyncio
async def test_root(plain_client: AsyncClient) -> None:
    """Test root endpoint returns API info."""
    response = await plain_client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "name" in data
    assert "version" in data
    assert "docs" in data


@pytest.mark.asyncio
async def test_liveness(plain_client: AsyncClient) -> None:
    """Test liveness probe endpoint."""
    response = await plain_client.get("/api/v1/health/live")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "alive"


@pytest.mark.asyncio
async def test_health_checks_dependencies(client: AsyncClient) -> None:
    """Full health check reports database, broker and template registry."""
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["checks"] == {"database": "healthy", "redis": "healthy", "templates": "healthy"}
    assert data["due_emails"] == 0


@pytest.mark.asyncio
async def test_health_counts_due_emails(
    client: AsyncClient,
    user: User,
    scheduled_email_factory: Callable[..., Any],
) -> None:
    """Only pending emails whose send time has passed are counted."""
    now = datetime.now(UTC)
    await scheduled_email_factory(user_id=user.id, scheduled_for=now - timedelta(minutes=5))
    await scheduled_email_factory(user_id=user.id, scheduled_for=now + timedelta(hours=1))
    await scheduled_email_factory(
        user_id=user.id,
        scheduled_for=now - timedelta(minutes=5),
        status=ScheduleStatus.SENT,
    )

    response = await client.get("/api/v1/health")
    assert response.json()["due_emails"] == 1


@pytest.mark.asyncio
async def test_readiness(client: AsyncClient) -> None:
    """Readiness probe succeeds when the database answers."""
    response = await client.get("/api/v1/health/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready"}


@pytest.mark.asyncio
async def test_request_id_echoed(plain_client: AsyncClient) -> None:
    """The X-Request-ID header is propagated to the response."""
    response = await plain_client.get("/api/v1/health/live", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
