"""Tests for the template registry and renderer."""

from types import SimpleNamespace
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from rlly.core.exceptions import TemplateNotFoundError, TemplateValidationError
from rlly.services.template_registry import (
    BUILTIN_COMPONENTS,
    TemplateComponent,
    TemplateRegistry,
    generate_sample_data,
    validate_template_variables,
)
from rlly.services.template_renderer import TemplateRenderer


def goes_live_template(**overrides: Any) -> SimpleNamespace:
    fields: dict[str, Any] = {
        "template_id": "event_goes_live",
        "subject": "{{ event_name }} is starting now!",
        "component_path": "event_goes_live",
        "variables": ["email", "user_name", "event_name", "event_date", "event_url"],
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestTemplateRegistry:
    """Component lookup and lifecycle."""

    def test_builtin_components_registered(self, registry: TemplateRegistry) -> None:
        """Every shipped component is available by path."""
        paths = {component.path for component in registry.components}
        assert paths == {component.path for component in BUILTIN_COMPONENTS}
        assert registry.has("event_goes_live")

    def test_unknown_component_raises(self, registry: TemplateRegistry) -> None:
        """Looking up an unregistered component is a TemplateNotFoundError."""
        with pytest.raises(TemplateNotFoundError):
            registry.get("does_not_exist")

    def test_every_builtin_renders_its_sample_data(self, registry: TemplateRegistry) -> None:
        """Each shipped component renders with its own sample data."""
        renderer = TemplateRenderer(registry)
        for component in BUILTIN_COMPONENTS:
            template = SimpleNamespace(
                template_id=component.path,
                subject="Preview",
                component_path=component.path,
                variables=list(component.required_props),
            )
            data = {"email": "sam@example.com", **component.sample_data}
            rendered = renderer.render(template, data)
            assert rendered.html.startswith("<!DOCTYPE html>")
            assert rendered.plain_text.strip()

    def test_register_custom_component(self, registry: TemplateRegistry) -> None:
        """Registering under an existing path replaces the component."""
        custom = TemplateComponent(
            path="event_goes_live",
            html_template="event_goes_live.html",
            text_template="event_goes_live.txt",
            required_props=("email",),
        )
        registry.register(custom)
        assert registry.get("event_goes_live").required_props == ("email",)

    def test_close_is_idempotent(self) -> None:
        """Closing twice is harmless and leaves no components."""
        registry = TemplateRegistry()
        registry.close()
        registry.close()
        assert registry.components == []


class TestTemplateVariables:
    """Variable validation and sample data generation."""

    def test_missing_and_null_values_reported(self) -> None:
        """Absent and None values both count as missing, in declared order."""
        missing = validate_template_variables(
            ["email", "user_name", "event_url"],
            {"email": "a@b.c", "user_name": None},
        )
        assert missing == ["user_name", "event_url"]

    def test_falsy_values_are_present(self) -> None:
        """False, 0 and empty strings are supplied values."""
        assert validate_template_variables(["is_virtual", "count", "note"], {"is_virtual": False, "count": 0, "note": ""}) == []

    def test_generate_sample_data_by_name(self) -> None:
        """Placeholders follow the variable's naming convention."""
        sample = generate_sample_data(
            ["email", "event_url", "event_date", "is_virtual", "hours_until_event", "rsvp_status", "event_name"]
        )
        assert sample["email"] == "user@example.com"
        assert sample["event_url"].startswith("https://")
        assert sample["event_date"].startswith("2026-")
        assert sample["is_virtual"] is False
        assert sample["hours_until_event"] == 1
        assert sample["rsvp_status"] == "going"
        assert sample["event_name"] == "Sample event name"


class TestTemplateRenderer:
    """Rendering subject, HTML and plain text."""

    @pytest.fixture
    def data(self, goes_live_data: dict[str, Any]) -> dict[str, Any]:
        return dict(goes_live_data)

    def test_render_produces_all_parts(self, registry: TemplateRegistry, data: dict[str, Any]) -> None:
        """Subject, HTML and text are rendered from the payload."""
        rendered = TemplateRenderer(registry).render(goes_live_template(), data)
        assert rendered.subject == "Rooftop Social is starting now!"
        assert "Rooftop Social is live!" in rendered.html
        assert "Hi Sam! Your event is starting now." in rendered.plain_text
        assert "Location: 123 Main St" in rendered.plain_text
        assert "https://rlly.live/event/evt_1" in rendered.html

    def test_render_is_deterministic(self, registry: TemplateRegistry, data: dict[str, Any]) -> None:
        """The same template and data render identically."""
        renderer = TemplateRenderer(registry)
        assert renderer.render(goes_live_template(), data) == renderer.render(goes_live_template(), data)

    def test_missing_variables_raise(self, registry: TemplateRegistry, data: dict[str, Any]) -> None:
        """Rendering without a required variable names what is missing."""
        del data["event_url"]
        with pytest.raises(TemplateValidationError) as exc_info:
            TemplateRenderer(registry).render(goes_live_template(), data)
        assert exc_info.value.missing == ["event_url"]

    def test_component_props_required_even_if_undeclared(
        self, registry: TemplateRegistry, data: dict[str, Any]
    ) -> None:
        """A template cannot opt out of its component's required props."""
        del data["user_name"]
        template = goes_live_template(variables=["email"])
        with pytest.raises(TemplateValidationError) as exc_info:
            TemplateRenderer(registry).validate(template, data)
        assert "user_name" in exc_info.value.missing

    def test_html_is_escaped_text_is_not(self, registry: TemplateRegistry, data: dict[str, Any]) -> None:
        """Payload values are escaped in HTML only."""
        data["event_name"] = "Tom & Jerry <live>"
        rendered = TemplateRenderer(registry).render(goes_live_template(), data)
        assert "Tom &amp; Jerry &lt;live&gt;" in rendered.html
        assert "Tom & Jerry <live>" in rendered.plain_text
        assert rendered.subject == "Tom & Jerry <live> is starting now!"

    def test_virtual_event_shows_join_link(self, registry: TemplateRegistry, data: dict[str, Any]) -> None:
        """Virtual events link to the stream instead of a location."""
        data.update(is_virtual=True, virtual_link="https://meet.example.com/abc")
        rendered = TemplateRenderer(registry).render(goes_live_template(), data)
        assert "Join virtual event: https://meet.example.com/abc" in rendered.plain_text
        assert "Location:" not in rendered.plain_text

    def test_unsubscribe_link_from_context(self, registry: TemplateRegistry, data: dict[str, Any]) -> None:
        """Context values render alongside the payload."""
        rendered = TemplateRenderer(registry).render(
            goes_live_template(), data, {"unsubscribe_url": "https://api.example.com/unsub?token=t"}
        )
        assert "https://api.example.com/unsub?token=t" in rendered.html
        assert "Unsubscribe: https://api.example.com/unsub?token=t" in rendered.plain_text

    def test_dates_formatted_in_registry_timezone(self, data: dict[str, Any]) -> None:
        """format_datetime converts to the configured zone."""
        utc_text = TemplateRenderer(TemplateRegistry()).render(goes_live_template(), data).plain_text
        ny_registry = TemplateRegistry(timezone=ZoneInfo("America/New_York"))
        ny_text = TemplateRenderer(ny_registry).render(goes_live_template(), data).plain_text
        assert "Started at: Thursday, January 15, 2026 at 7:00 PM UTC" in utc_text
        assert "Started at: Thursday, January 15, 2026 at 2:00 PM EST" in ny_text
