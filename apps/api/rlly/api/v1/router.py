"""API v1 router combining all route modules."""

from typing import Any

from fastapi import APIRouter

from rlly.api.v1 import (
    batches,
    events,
    health,
    notifications,
    preferences,
    rules,
    templates,
)
from rlly.schemas.common import ErrorResponse

# Domain errors share one body shape: {detail, code, missing?}
ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Inbound triggers, delayed-send queue and unsubscribe links
api_router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["notifications"],
    responses=ERROR_RESPONSES,
)

# Rule management
api_router.include_router(
    rules.router,
    prefix="/rules",
    tags=["rules"],
    responses=ERROR_RESPONSES,
)

# Templates and previews
api_router.include_router(
    templates.router,
    prefix="/templates",
    tags=["templates"],
    responses=ERROR_RESPONSES,
)

# Event-triggered scheduling (goes live)
api_router.include_router(
    events.router,
    prefix="/events",
    tags=["events"],
    responses=ERROR_RESPONSES,
)

# Bulk sends
api_router.include_router(
    batches.router,
    prefix="/batches",
    tags=["batches"],
    responses=ERROR_RESPONSES,
)

# Per-user notification preferences
api_router.include_router(
    preferences.router,
    prefix="/users",
    tags=["preferences"],
    responses=ERROR_RESPONSES,
)
