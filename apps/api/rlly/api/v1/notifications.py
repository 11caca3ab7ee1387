"""Notification trigger, delayed-send queue and unsubscribe endpoints."""

import logging
from uuid import UUID

import jwt
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.config import settings
from rlly.core.deps import Registry, get_db
from rlly.core.exceptions import UserNotFoundError
from rlly.core.rate_limit import limiter
from rlly.models.scheduled_email import ScheduleStatus
from rlly.schemas.common import PaginatedResponse
from rlly.schemas.email_events import TriggerEmailEventRequest, TriggerEmailEventResponse
from rlly.schemas.scheduling import DispatchRunResult, ProcessingStats, ScheduledEmailResponse
from rlly.services.email_dispatcher import EmailDispatcher
from rlly.services.email_engine import EmailEngineService
from rlly.services.preference_service import PreferenceService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/trigger",
    response_model=TriggerEmailEventResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
@limiter.limit(settings.trigger_rate_limit)
async def trigger_email_event(
    request: Request,  # noqa: ARG001 (required by slowapi)
    data: TriggerEmailEventRequest,
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> TriggerEmailEventResponse:
    """Record a domain event and queue the emails its rules produce."""
    service = EmailEngineService(db, registry)
    return await service.trigger_email_event(
        data.event_type,
        data.user_id,
        data.data,
        metadata=data.metadata,
    )


@router.get("/scheduled", response_model=PaginatedResponse[ScheduledEmailResponse])
async def list_scheduled_emails(
    registry: Registry,
    status_filter: ScheduleStatus | None = Query(None, alias="status"),
    user_id: UUID | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> PaginatedResponse[ScheduledEmailResponse]:
    """Get paginated list of scheduled emails."""
    dispatcher = EmailDispatcher(db, registry)
    records, total = await dispatcher.list_scheduled(
        status=status_filter, user_id=user_id, page=page, page_size=page_size
    )
    items = [ScheduledEmailResponse.model_validate(record) for record in records]
    pages = (total + page_size - 1) // page_size if total > 0 else 1
    return PaginatedResponse(items=items, total=total, page=page, page_size=page_size, pages=pages)


@router.get("/scheduled/{scheduled_email_id}", response_model=ScheduledEmailResponse)
async def get_scheduled_email(
    scheduled_email_id: UUID,
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> ScheduledEmailResponse:
    """Get a single scheduled email by ID."""
    dispatcher = EmailDispatcher(db, registry)
    return ScheduledEmailResponse.model_validate(await dispatcher.get(scheduled_email_id))


@router.post("/scheduled/{scheduled_email_id}/cancel", response_model=ScheduledEmailResponse)
async def cancel_scheduled_email(
    scheduled_email_id: UUID,
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> ScheduledEmailResponse:
    """Cancel a scheduled email that has not been picked up yet."""
    dispatcher = EmailDispatcher(db, registry)
    return ScheduledEmailResponse.model_validate(await dispatcher.cancel(scheduled_email_id))


@router.post("/dispatch", response_model=DispatchRunResult)
async def run_dispatch(
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> DispatchRunResult:
    """Run one dispatcher pass now instead of waiting for the periodic task."""
    dispatcher = EmailDispatcher(db, registry)
    return await dispatcher.run_due()


@router.get("/stats", response_model=ProcessingStats)
async def get_processing_stats(
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> ProcessingStats:
    """Counts of scheduled emails per status."""
    dispatcher = EmailDispatcher(db, registry)
    return await dispatcher.get_stats()


@router.get("/unsubscribe", response_class=HTMLResponse)
async def unsubscribe(
    token: str = Query(...),
    db: AsyncSession = Depends(get_db),
) -> HTMLResponse:
    """Handle email unsubscribe via signed token."""
    service = PreferenceService(db)
    try:
        _user_id, category = await service.unsubscribe(token)
    except (jwt.InvalidTokenError, KeyError, ValueError, UserNotFoundError):
        return HTMLResponse(
            "<html><body><h1>Invalid Link</h1>"
            "<p>This unsubscribe link is invalid or has expired.</p></body></html>",
            status_code=400,
        )

    await db.commit()

    label = category.replace("_", " ")
    return HTMLResponse(
        "<html><body style='font-family: sans-serif; text-align: center; padding: 60px;'>"
        "<h1>Unsubscribed</h1>"
        f"<p>You've been unsubscribed from {label} emails. "
        "You can turn them back on from your Rlly notification settings.</p>"
        "</body></html>"
    )
