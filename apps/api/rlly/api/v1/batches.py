"""Bulk email batch endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.deps import Registry, get_db
from rlly.schemas.common import PaginatedResponse
from rlly.schemas.scheduling import EmailBatchCreate, EmailBatchResponse
from rlly.services.batch_service import BatchService

router = APIRouter()


@router.get("", response_model=PaginatedResponse[EmailBatchResponse])
async def list_batches(
    registry: Registry,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> PaginatedResponse[EmailBatchResponse]:
    """Get paginated list of batches, newest first."""
    service = BatchService(db, registry)
    batches, total = await service.list_batches(page, page_size)
    items = [EmailBatchResponse.model_validate(batch) for batch in batches]
    pages = (total + page_size - 1) // page_size if total > 0 else 1
    return PaginatedResponse(items=items, total=total, page=page, page_size=page_size, pages=pages)


@router.post("", response_model=EmailBatchResponse, status_code=status.HTTP_201_CREATED)
async def create_batch(
    data: EmailBatchCreate,
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> EmailBatchResponse:
    """Create a draft batch."""
    service = BatchService(db, registry)
    return EmailBatchResponse.model_validate(await service.create_batch(data))


@router.get("/{batch_id}", response_model=EmailBatchResponse)
async def get_batch(
    batch_id: UUID,
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> EmailBatchResponse:
    service = BatchService(db, registry)
    return EmailBatchResponse.model_validate(await service.get_batch(batch_id))


@router.post("/{batch_id}/schedule", response_model=EmailBatchResponse)
async def schedule_batch(
    batch_id: UUID,
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> EmailBatchResponse:
    """Queue a draft batch for sending at its scheduled time (or now)."""
    service = BatchService(db, registry)
    return EmailBatchResponse.model_validate(await service.schedule_batch(batch_id))


@router.post("/{batch_id}/cancel", response_model=EmailBatchResponse)
async def cancel_batch(
    batch_id: UUID,
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> EmailBatchResponse:
    """Cancel a batch that has not started sending."""
    service = BatchService(db, registry)
    return EmailBatchResponse.model_validate(await service.cancel_batch(batch_id))
