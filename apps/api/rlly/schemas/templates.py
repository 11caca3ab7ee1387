"""Pydantic schemas for email templates and rendered output."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from rlly.models.email_template import TemplateCategory
from rlly.schemas.common import BaseSchema


class EmailTemplateCreate(BaseSchema):
    """Request body for registering a template (or a new version of one)."""

    template_id: str = Field(..., pattern=r"^[a-z0-9_]+$", max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    subject: str = Field(..., min_length=1, max_length=500)
    component_path: str = Field(..., min_length=1, max_length=255)
    variables: list[str] = Field(default_factory=list)
    category: TemplateCategory
    preview_data: dict[str, Any] | None = None


class EmailTemplateResponse(BaseSchema):
    """API response for a template."""

    id: UUID
    template_id: str
    name: str
    subject: str
    component_path: str
    variables: list[str]
    category: TemplateCategory
    active: bool
    version: int
    preview_data: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime


class RenderedEmail(BaseSchema):
    """Output of the template renderer."""

    subject: str
    html: str
    plain_text: str


class TemplatePreviewRequest(BaseSchema):
    """Optional data overriding the template's preview data."""

    data: dict[str, Any] | None = None


class TemplatePreviewResponse(BaseSchema):
    """Rendered preview of a template."""

    template_id: str
    version: int
    subject: str
    html_preview: str
    plain_text_preview: str
    sample_data: dict[str, Any]
    generated_at: datetime


class SetupDefaultsResponse(BaseSchema):
    """Result of seeding the shipped templates and rules."""

    templates_created: int
    rules_created: int
