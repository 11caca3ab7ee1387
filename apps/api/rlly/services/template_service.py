"""EmailTemplate lookup, versioning and previews."""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.exceptions import TemplateNotFoundError, TemplateValidationError
from rlly.models.email_template import EmailTemplate
from rlly.schemas.templates import (
    EmailTemplateCreate,
    TemplatePreviewResponse,
)
from rlly.services.template_registry import TemplateRegistry, generate_sample_data
from rlly.services.template_renderer import TemplateRenderer

logger = logging.getLogger(__name__)


class TemplateService:
    """Template rows in the database, checked against the component registry."""

    def __init__(self, db: AsyncSession, registry: TemplateRegistry) -> None:
        self.db = db
        self.registry = registry
        self.renderer = TemplateRenderer(registry)

    async def get_active(self, template_id: str) -> EmailTemplate:
        """Latest active version of a template.

        Raises TemplateNotFoundError when there is none.
        """
        stmt = (
            select(EmailTemplate)
            .where(EmailTemplate.template_id == template_id, EmailTemplate.active.is_(True))
            .order_by(EmailTemplate.version.desc())
            .limit(1)
        )
        template = (await self.db.execute(stmt)).scalar_one_or_none()
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    async def list_templates(self, *, include_inactive: bool = False) -> list[EmailTemplate]:
        stmt = select(EmailTemplate).order_by(EmailTemplate.template_id, EmailTemplate.version)
        if not include_inactive:
            stmt = stmt.where(EmailTemplate.active.is_(True))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_template(self, data: EmailTemplateCreate) -> EmailTemplate:
        """Register a template, or a new version of an existing one.

        The component must be registered and ``variables`` must cover its
        required props. Older versions are deactivated. Caller commits.
        """
        component = self.registry.get(data.component_path)
        missing = [prop for prop in component.required_props if prop not in data.variables]
        if missing:
            raise TemplateValidationError(data.template_id, missing)

        latest = (
            await self.db.execute(
                select(func.max(EmailTemplate.version)).where(
                    EmailTemplate.template_id == data.template_id
                )
            )
        ).scalar()
        version = (latest or 0) + 1
        if latest:
            await self.db.execute(
                update(EmailTemplate)
                .where(EmailTemplate.template_id == data.template_id)
                .values(active=False)
            )

        template = EmailTemplate(
            template_id=data.template_id,
            name=data.name,
            subject=data.subject,
            component_path=data.component_path,
            variables=list(data.variables),
            category=data.category,
            active=True,
            version=version,
            preview_data=data.preview_data,
        )
        self.db.add(template)
        await self.db.flush()
        logger.info("Email template registered: id=%s version=%s", data.template_id, version)
        return template

    def sample_data_for(self, template: EmailTemplate) -> dict[str, Any]:
        """Preview data: generated placeholders, component samples, then the template's own."""
        component = self.registry.get(template.component_path)
        sample = generate_sample_data(self.renderer.required_variables(template))
        sample.update(component.sample_data)
        sample.update(template.preview_data or {})
        return sample

    async def preview(
        self,
        template_id: str,
        data: dict[str, Any] | None = None,
    ) -> TemplatePreviewResponse:
        """Render the active version of a template with sample data."""
        template = await self.get_active(template_id)
        sample = self.sample_data_for(template)
        if data:
            sample.update(data)
        rendered = self.renderer.render(template, sample)
        return TemplatePreviewResponse(
            template_id=template.template_id,
            version=template.version,
            subject=rendered.subject,
            html_preview=rendered.html,
            plain_text_preview=rendered.plain_text,
            sample_data=sample,
            generated_at=datetime.now(UTC),
        )
