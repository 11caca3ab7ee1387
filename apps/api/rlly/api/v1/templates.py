"""Email template endpoints: list, register, preview and seed defaults."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.deps import Registry, get_db
from rlly.schemas.templates import (
    EmailTemplateCreate,
    EmailTemplateResponse,
    SetupDefaultsResponse,
    TemplatePreviewRequest,
    TemplatePreviewResponse,
)
from rlly.services.email_engine import EmailEngineService
from rlly.services.template_service import TemplateService

router = APIRouter()


@router.get("", response_model=list[EmailTemplateResponse])
async def list_templates(
    registry: Registry,
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
) -> list[EmailTemplateResponse]:
    """List templates (latest active versions unless include_inactive)."""
    service = TemplateService(db, registry)
    templates = await service.list_templates(include_inactive=include_inactive)
    return [EmailTemplateResponse.model_validate(t) for t in templates]


@router.post("", response_model=EmailTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    data: EmailTemplateCreate,
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> EmailTemplateResponse:
    """Register a template. Re-registering an id creates a new version."""
    service = TemplateService(db, registry)
    template = await service.create_template(data)
    await db.commit()
    await db.refresh(template)
    return EmailTemplateResponse.model_validate(template)


@router.post("/setup", response_model=SetupDefaultsResponse)
async def setup_default_templates(
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> SetupDefaultsResponse:
    """Seed the shipped templates and rules. Safe to call repeatedly."""
    service = EmailEngineService(db, registry)
    return await service.setup_defaults()


@router.post("/{template_id}/preview", response_model=TemplatePreviewResponse)
async def preview_template(
    template_id: str,
    registry: Registry,
    data: TemplatePreviewRequest | None = None,
    db: AsyncSession = Depends(get_db),
) -> TemplatePreviewResponse:
    """Render the active version of a template with sample or supplied data."""
    service = TemplateService(db, registry)
    return await service.preview(template_id, data.data if data else None)
