"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.config import settings
from rlly.core.database import get_async_session
from rlly.services.template_registry import TemplateRegistry


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Alias for get_async_session."""
    async for session in get_async_session():
        yield session


# Shared Redis connection pool
_redis_pool: aioredis.ConnectionPool | None = None


def _get_redis_pool() -> aioredis.ConnectionPool:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(
            str(settings.redis_url), decode_responses=True
        )
    return _redis_pool


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    """Yield a Redis client from the shared connection pool."""
    pool = _get_redis_pool()
    r = aioredis.Redis(connection_pool=pool)
    try:
        yield r
    finally:
        await r.aclose()


def get_template_registry(request: Request) -> TemplateRegistry:
    """The registry built in the application lifespan."""
    registry: TemplateRegistry = request.app.state.template_registry
    return registry


# Template registry dependency
Registry = Annotated[TemplateRegistry, Depends(get_template_registry)]


__all__ = [
    "Registry",
    "get_db",
    "get_redis",
    "get_template_registry",
]
