"""Render an EmailTemplate with payload data into subject, HTML and text."""

from collections.abc import Mapping
from typing import Any, Protocol

from rlly.core.exceptions import TemplateValidationError
from rlly.schemas.templates import RenderedEmail
from rlly.services.template_registry import TemplateRegistry, validate_template_variables


class TemplateLike(Protocol):
    template_id: str
    subject: str
    component_path: str
    variables: list[str]


class TemplateRenderer:
    """Pure renderer: the same template and data always give the same output."""

    def __init__(self, registry: TemplateRegistry) -> None:
        self.registry = registry

    def required_variables(self, template: TemplateLike) -> list[str]:
        """Declared variables plus the component's required props, in order."""
        component = self.registry.get(template.component_path)
        names = list(template.variables or [])
        names.extend(prop for prop in component.required_props if prop not in names)
        return names

    def validate(self, template: TemplateLike, data: Mapping[str, Any]) -> None:
        missing = validate_template_variables(self.required_variables(template), data)
        if missing:
            raise TemplateValidationError(template.template_id, missing)

    def render(
        self,
        template: TemplateLike,
        data: Mapping[str, Any],
        context: Mapping[str, Any] | None = None,
    ) -> RenderedEmail:
        """Validate ``data`` and render all three parts.

        ``context`` holds extra values that are not part of the payload, such
        as the unsubscribe URL.
        """
        self.validate(template, data)
        component = self.registry.get(template.component_path)

        values = {**data, **(context or {})}
        subject = self.registry.from_string(template.subject).render(values)
        html = self.registry.load(component.html_template).render({**values, "subject": subject})
        plain_text = self.registry.load(component.text_template).render({**values, "subject": subject})

        return RenderedEmail(
            subject=" ".join(subject.split()),
            html=html,
            plain_text=plain_text.strip() + "\n",
        )
