"""Registry of renderable email components.

A component is a pair of Jinja2 templates (HTML and plain text) under
``rlly/templates/email`` plus the props it cannot render without. The
``EmailTemplate`` rows in the database point at components through
``component_path``.

The registry is constructed explicitly: the API builds one in its lifespan
and keeps it on ``app.state``, and each Celery task builds its own.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, tzinfo
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, Template, select_autoescape

from rlly.core.exceptions import TemplateNotFoundError

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"


@dataclass(frozen=True)
class TemplateComponent:
    """A renderable component: HTML body, text body and required props."""

    path: str
    html_template: str
    text_template: str
    required_props: tuple[str, ...] = ()
    sample_data: Mapping[str, Any] = field(default_factory=dict)


def _component(path: str, required: Iterable[str], sample: Mapping[str, Any]) -> TemplateComponent:
    return TemplateComponent(
        path=path,
        html_template=f"{path}.html",
        text_template=f"{path}.txt",
        required_props=tuple(required),
        sample_data=dict(sample),
    )


_SAMPLE_DATE = "2026-01-15T19:00:00+00:00"

BUILTIN_COMPONENTS: tuple[TemplateComponent, ...] = (
    _component(
        "event_invitation",
        ["email", "invited_name", "inviter_name", "event_name", "event_date", "invitation_url"],
        {
            "invited_name": "Sam",
            "inviter_name": "Alex",
            "event_name": "Rooftop Social",
            "event_date": _SAMPLE_DATE,
            "event_location": "123 Main St",
            "message": "Would love to see you there!",
            "invitation_url": "https://rlly.live/event/sample",
        },
    ),
    _component(
        "event_rsvp",
        ["email", "host_name", "attendee_name", "event_name", "rsvp_status", "event_url"],
        {
            "host_name": "Alex",
            "attendee_name": "Sam",
            "event_name": "Rooftop Social",
            "rsvp_status": "going",
            "event_url": "https://rlly.live/event/sample",
        },
    ),
    _component(
        "event_reminder",
        ["email", "user_name", "event_name", "event_date", "event_url", "hours_until_event"],
        {
            "user_name": "Sam",
            "event_name": "Rooftop Social",
            "event_date": _SAMPLE_DATE,
            "event_location": "123 Main St",
            "event_url": "https://rlly.live/event/sample",
            "hours_until_event": 24,
        },
    ),
    _component(
        "new_event_notification",
        ["email", "subscriber_name", "host_name", "event_name", "event_date", "calendar_name", "event_url"],
        {
            "subscriber_name": "Sam",
            "host_name": "Alex",
            "event_name": "Rooftop Social",
            "event_date": _SAMPLE_DATE,
            "calendar_name": "Downtown Meetups",
            "event_url": "https://rlly.live/event/sample",
        },
    ),
    _component(
        "calendar_invitation",
        ["email", "inviter_name", "calendar_name", "join_url"],
        {
            "inviter_name": "Alex",
            "calendar_name": "Downtown Meetups",
            "join_url": "https://rlly.live/cal/sample",
        },
    ),
    _component(
        "event_goes_live",
        ["email", "user_name", "event_name", "event_date", "event_url"],
        {
            "user_name": "Sam",
            "event_name": "Rooftop Social",
            "event_date": _SAMPLE_DATE,
            "event_location": "123 Main St",
            "event_url": "https://rlly.live/event/sample",
            "is_virtual": False,
            "virtual_link": None,
        },
    ),
)


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def validate_template_variables(variables: Iterable[str], data: Mapping[str, Any]) -> list[str]:
    """Names in ``variables`` that are absent from ``data`` or set to None."""
    return [name for name in variables if data.get(name) is None]


def generate_sample_data(variables: Iterable[str]) -> dict[str, Any]:
    """Placeholder values for previewing a template with no preview data."""
    sample: dict[str, Any] = {}
    for name in variables:
        if name == "email" or name.endswith("_email"):
            sample[name] = "user@example.com"
        elif name.endswith("_url") or name.endswith("_link"):
            sample[name] = "https://rlly.live/sample"
        elif name.endswith("_date") or name.endswith("_time"):
            sample[name] = _SAMPLE_DATE
        elif name.startswith("is_"):
            sample[name] = False
        elif name.endswith("_count") or name.startswith("hours_"):
            sample[name] = 1
        elif name.endswith("_status"):
            sample[name] = "going"
        else:
            sample[name] = f"Sample {name.replace('_', ' ')}"
    return sample


class TemplateRegistry:
    """Known components and the Jinja2 environment that renders them."""

    def __init__(
        self,
        template_dir: Path | str = TEMPLATE_DIR,
        *,
        components: Iterable[TemplateComponent] = BUILTIN_COMPONENTS,
        timezone: tzinfo = UTC,
    ) -> None:
        self.template_dir = Path(template_dir)
        self.timezone = timezone
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
            keep_trailing_newline=True,
        )
        self.env.filters["format_datetime"] = self._format_datetime
        self.env.filters["format_time"] = self._format_time
        self._components: dict[str, TemplateComponent] = {}
        for component in components:
            self.register(component)
        self._closed = False

    def register(self, component: TemplateComponent) -> None:
        if component.path in self._components:
            logger.info("Replacing registered email component: %s", component.path)
        self._components[component.path] = component

    def get(self, path: str) -> TemplateComponent:
        component = self._components.get(path)
        if component is None:
            raise TemplateNotFoundError(path)
        return component

    def has(self, path: str) -> bool:
        return path in self._components

    @property
    def components(self) -> list[TemplateComponent]:
        return list(self._components.values())

    def load(self, name: str) -> Template:
        return self.env.get_template(name)

    def from_string(self, source: str) -> Template:
        return self.env.from_string(source)

    def close(self) -> None:
        """Drop compiled templates. The registry is unusable afterwards."""
        if self._closed:
            return
        if self.env.cache is not None:
            self.env.cache.clear()
        self._components.clear()
        self._closed = True
        logger.info("Template registry closed")

    # --- filters -----------------------------------------------------------

    def _format_datetime(self, value: Any) -> str:
        parsed = _parse_datetime(value)
        if parsed is None:
            return "" if value is None else str(value)
        local = parsed.astimezone(self.timezone)
        return local.strftime("%A, %B %d, %Y at %I:%M %p %Z").replace(" 0", " ")

    def _format_time(self, value: Any) -> str:
        parsed = _parse_datetime(value)
        if parsed is None:
            return "" if value is None else str(value)
        local = parsed.astimezone(self.timezone)
        return local.strftime("%I:%M %p %Z").lstrip("0")
