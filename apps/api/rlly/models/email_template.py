"""EmailTemplate model: metadata about a renderable email component."""

import enum
from typing import Any

from sqlalchemy import Boolean, Enum, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from rlly.models.base import Base, JSONType


class TemplateCategory(str, enum.Enum):
    """Audience category of a template."""

    USER = "user"
    EVENT_ATTENDEE = "event_attendee"
    EVENT_HOST = "event_host"
    CALENDAR_MANAGER = "calendar_manager"
    CALENDAR = "calendar"
    PRODUCT = "product"
    SYSTEM = "system"


class EmailTemplate(Base):
    """Versioned template metadata.

    ``component_path`` names a component registered in the
    ``TemplateRegistry``; ``variables`` lists the payload fields that must be
    present before the template may be rendered.
    """

    __tablename__ = "email_templates"
    __table_args__ = (
        UniqueConstraint("template_id", "version", name="uq_email_templates_template_version"),
    )

    template_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    component_path: Mapped[str] = mapped_column(String(255), nullable=False)
    variables: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    category: Mapped[TemplateCategory] = mapped_column(
        Enum(
            TemplateCategory,
            name="template_category",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    preview_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    def __repr__(self) -> str:
        return f"<EmailTemplate {self.template_id} v{self.version}>"
