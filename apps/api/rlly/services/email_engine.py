"""Email engine: inbound triggers, rule evaluation and queueing.

``trigger_email_event`` is the single entry point for domain code that wants
to notify a user. It validates the payload, stores an EmailEvent and
processes it straight away, so a bad payload or an unrenderable template is
reported to the caller instead of surfacing later in a worker.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

from kombu.exceptions import OperationalError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.config import settings
from rlly.core.exceptions import RecordNotFoundError, TemplateNotFoundError, UserNotFoundError
from rlly.models.email_event import EmailEvent, EventType, notification_category
from rlly.models.email_metric import RuleMetric
from rlly.models.email_rule import EmailRule
from rlly.models.email_template import EmailTemplate, TemplateCategory
from rlly.models.scheduled_email import ScheduledEmail, ScheduleStatus
from rlly.models.user import User
from rlly.schemas.email_events import (
    TriggerEmailEventResponse,
    parse_event_payload,
    payload_to_data,
)
from rlly.schemas.rules import EmailRuleCreate, EmailRuleUpdate
from rlly.schemas.templates import SetupDefaultsResponse
from rlly.services.preference_service import PreferenceService
from rlly.services.rule_engine import match_rules
from rlly.services.template_registry import TemplateRegistry
from rlly.services.template_service import TemplateService

logger = logging.getLogger(__name__)

# Templates and rules shipped with the product, seeded by setup_defaults()
DEFAULT_TEMPLATES: list[dict[str, Any]] = [
    {
        "template_id": "event_invitation",
        "name": "Event Invitation",
        "subject": "You're invited to an event!",
        "component_path": "event_invitation",
        "variables": ["invited_name", "inviter_name", "event_name", "event_date", "invitation_url", "email"],
        "category": TemplateCategory.EVENT_ATTENDEE,
    },
    {
        "template_id": "event_rsvp",
        "name": "Event RSVP Notification",
        "subject": "Someone RSVPed to your event",
        "component_path": "event_rsvp",
        "variables": ["host_name", "attendee_name", "event_name", "rsvp_status", "event_url", "email"],
        "category": TemplateCategory.EVENT_HOST,
    },
    {
        "template_id": "event_reminder",
        "name": "Event Reminder",
        "subject": "Your event is coming up!",
        "component_path": "event_reminder",
        "variables": ["user_name", "event_name", "event_date", "event_url", "hours_until_event", "email"],
        "category": TemplateCategory.EVENT_ATTENDEE,
    },
    {
        "template_id": "new_event_notification",
        "name": "New Event Notification",
        "subject": "New event in a calendar you follow",
        "component_path": "new_event_notification",
        "variables": [
            "subscriber_name",
            "host_name",
            "event_name",
            "event_date",
            "calendar_name",
            "event_url",
            "email",
        ],
        "category": TemplateCategory.CALENDAR_MANAGER,
    },
    {
        "template_id": "calendar_invitation",
        "name": "Calendar Invitation",
        "subject": "You're invited to join a calendar!",
        "component_path": "calendar_invitation",
        "variables": ["inviter_name", "calendar_name", "join_url", "email"],
        "category": TemplateCategory.CALENDAR,
    },
    {
        "template_id": "event_goes_live",
        "name": "Event Goes Live",
        "subject": "Your event is starting now!",
        "component_path": "event_goes_live",
        "variables": ["user_name", "event_name", "event_date", "event_url", "email"],
        "category": TemplateCategory.EVENT_ATTENDEE,
    },
]

DEFAULT_RULES: list[dict[str, Any]] = [
    {"trigger": EventType.EVENT_INVITATION, "template_id": "event_invitation"},
    {"trigger": EventType.EVENT_RSVP, "template_id": "event_rsvp"},
    {"trigger": EventType.EVENT_REMINDER, "template_id": "event_reminder"},
    {"trigger": EventType.NEW_EVENT_NOTIFICATION, "template_id": "new_event_notification"},
    {"trigger": EventType.CALENDAR_INVITATION, "template_id": "calendar_invitation"},
    {"trigger": EventType.EVENT_GOES_LIVE, "template_id": "event_goes_live"},
]


class EmailEngineService:
    """Turns email events into scheduled emails."""

    def __init__(self, db: AsyncSession, registry: TemplateRegistry) -> None:
        self.db = db
        self.templates = TemplateService(db, registry)
        self.preferences = PreferenceService(db)

    # --- Triggering ----------------------------------------------------------

    async def trigger_email_event(
        self,
        event_type: EventType,
        user_id: UUID,
        data: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> TriggerEmailEventResponse:
        """Validate, store and process one email event.

        Raises PayloadValidationError, UserNotFoundError,
        TemplateNotFoundError or TemplateValidationError. When processing
        fails the event stays stored and unprocessed.
        """
        payload = parse_event_payload(event_type, data)

        if await self.db.get(User, user_id) is None:
            raise UserNotFoundError(user_id)

        event = EmailEvent(
            user_id=user_id,
            type=event_type.value,
            data=payload_to_data(payload),
            timestamp=datetime.now(UTC),
            processed=False,
            metadata_=metadata or {},
        )
        self.db.add(event)
        await self.db.commit()
        logger.info("Email event stored: id=%s type=%s user=%s", event.id, event.type, user_id)

        return await self.process_email_event(event.id)

    async def process_email_event(self, event_id: UUID) -> TriggerEmailEventResponse:
        """Evaluate rules for a stored event and queue the matching emails.

        The event is claimed with a conditional update, so a second call for
        the same event queues nothing.
        """
        now = datetime.now(UTC)
        claim = await self.db.execute(
            update(EmailEvent)
            .where(EmailEvent.id == event_id, EmailEvent.processed.is_(False))
            .values(processed=True, processed_at=now)
            .execution_options(synchronize_session=False)
        )
        if claim.rowcount == 0:
            if await self.db.get(EmailEvent, event_id) is None:
                raise RecordNotFoundError(f"Email event not found: {event_id}")
            logger.info("Email event already processed: id=%s", event_id)
            return TriggerEmailEventResponse(
                event_id=event_id,
                matched_rules=0,
                scheduled_email_ids=[],
                skipped_reason="already_processed",
            )

        try:
            scheduled = await self._process_claimed(event_id, now)
        except Exception:
            await self.db.rollback()
            raise
        return scheduled

    async def _process_claimed(self, event_id: UUID, now: datetime) -> TriggerEmailEventResponse:
        event = await self.db.get(EmailEvent, event_id, populate_existing=True)
        if event is None:
            raise RecordNotFoundError(f"Email event not found: {event_id}")

        user = await self.db.get(User, event.user_id)
        if user is None:
            raise UserNotFoundError(event.user_id)

        category = notification_category(event.type)
        if await self.preferences.is_opted_out(user.id, category):
            await self.db.commit()
            logger.info(
                "Email event skipped, user opted out: id=%s user=%s category=%s",
                event.id,
                user.id,
                category,
            )
            return TriggerEmailEventResponse(
                event_id=event.id,
                matched_rules=0,
                scheduled_email_ids=[],
                skipped_reason="opted_out",
            )

        rules = await self.get_active_rules(event.type)
        matched = match_rules(rules, event, user, tz=ZoneInfo(settings.notification_timezone))
        if not matched:
            await self.db.commit()
            logger.info("No rules matched email event: id=%s type=%s", event.id, event.type)
            return TriggerEmailEventResponse(
                event_id=event.id,
                matched_rules=0,
                scheduled_email_ids=[],
                skipped_reason="no_matching_rules",
            )

        # Every matched template must render before anything is queued
        templates: dict[str, EmailTemplate] = {}
        for rule in matched:
            if rule.template_id not in templates:
                templates[rule.template_id] = await self.templates.get_active(rule.template_id)
            self.templates.renderer.validate(templates[rule.template_id], event.data)

        queued: list[ScheduledEmail] = []
        for rule in matched:
            scheduled_for = now + timedelta(minutes=rule.delay_minutes or 0)
            scheduled = ScheduledEmail(
                user_id=user.id,
                rule_id=rule.id,
                email_event_id=event.id,
                template_id=rule.template_id,
                event_type=event.type,
                event_data=dict(event.data),
                scheduled_for=scheduled_for,
                expires_at=scheduled_for + timedelta(hours=settings.scheduled_email_expiry_hours),
                status=ScheduleStatus.PENDING,
                attempts=0,
                max_attempts=rule.max_attempts or settings.scheduled_email_max_attempts,
            )
            self.db.add(scheduled)
            queued.append(scheduled)
            await self._record_trigger(rule.id, now)

        await self.db.commit()
        logger.info(
            "Email event processed: id=%s type=%s matched=%d",
            event.id,
            event.type,
            len(matched),
        )

        from rlly.workers.tasks.notifications import deliver_scheduled_email

        for scheduled in queued:
            if scheduled.scheduled_for <= now:
                try:
                    deliver_scheduled_email.delay(str(scheduled.id))
                except OperationalError:
                    # Stays pending for the periodic dispatcher
                    logger.exception("Failed to enqueue scheduled email: id=%s", scheduled.id)

        return TriggerEmailEventResponse(
            event_id=event.id,
            matched_rules=len(matched),
            scheduled_email_ids=[scheduled.id for scheduled in queued],
        )

    async def _record_trigger(self, rule_id: UUID, now: datetime) -> None:
        metric = (
            await self.db.execute(select(RuleMetric).where(RuleMetric.rule_id == rule_id))
        ).scalar_one_or_none()
        if metric is None:
            metric = RuleMetric(rule_id=rule_id, total_triggers=0, successful_sends=0, failed_sends=0)
            self.db.add(metric)
        metric.total_triggers += 1
        metric.last_triggered = now

    # --- Rules ---------------------------------------------------------------

    async def get_active_rules(self, trigger: str) -> list[EmailRule]:
        stmt = (
            select(EmailRule)
            .where(EmailRule.trigger == trigger, EmailRule.active.is_(True))
            .order_by(EmailRule.priority.asc().nulls_last(), EmailRule.created_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_rules(
        self,
        trigger: EventType | None = None,
        active: bool | None = None,
    ) -> list[EmailRule]:
        stmt = select(EmailRule).order_by(
            EmailRule.trigger, EmailRule.priority.asc().nulls_last(), EmailRule.created_at
        )
        if trigger is not None:
            stmt = stmt.where(EmailRule.trigger == trigger.value)
        if active is not None:
            stmt = stmt.where(EmailRule.active.is_(active))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_rule(self, rule_id: UUID) -> EmailRule:
        rule = await self.db.get(EmailRule, rule_id)
        if rule is None:
            raise RecordNotFoundError(f"Email rule not found: {rule_id}")
        return rule

    async def create_rule(self, data: EmailRuleCreate) -> EmailRule:
        """Create a rule. Its template must exist and be active. Caller commits."""
        await self.templates.get_active(data.template_id)
        rule = EmailRule(
            trigger=data.trigger.value,
            template_id=data.template_id,
            conditions=data.conditions.model_dump(mode="json", exclude_none=True)
            if data.conditions
            else None,
            delay_minutes=data.delay_minutes,
            priority=data.priority,
            max_attempts=data.max_attempts,
            active=data.active,
            metadata_=data.metadata,
        )
        self.db.add(rule)
        await self.db.flush()
        logger.info("Email rule created: id=%s trigger=%s template=%s", rule.id, rule.trigger, rule.template_id)
        return rule

    async def update_rule(self, rule_id: UUID, data: EmailRuleUpdate) -> EmailRule:
        rule = await self.get_rule(rule_id)
        changes = data.model_dump(exclude_unset=True)
        if "template_id" in changes and changes["template_id"] is not None:
            await self.templates.get_active(changes["template_id"])
        if "conditions" in changes:
            changes["conditions"] = (
                data.conditions.model_dump(mode="json", exclude_none=True) if data.conditions else None
            )
        for key, value in changes.items():
            if value is None and key in ("template_id", "delay_minutes", "active"):
                continue
            setattr(rule, key, value)
        await self.db.flush()
        logger.info("Email rule updated: id=%s fields=%s", rule.id, sorted(changes))
        return rule

    async def get_rule_metrics(self, rule_id: UUID) -> RuleMetric:
        await self.get_rule(rule_id)
        metric = (
            await self.db.execute(select(RuleMetric).where(RuleMetric.rule_id == rule_id))
        ).scalar_one_or_none()
        if metric is None:
            return RuleMetric(rule_id=rule_id, total_triggers=0, successful_sends=0, failed_sends=0)
        return metric

    # --- Seeding -------------------------------------------------------------

    async def setup_defaults(self) -> SetupDefaultsResponse:
        """Insert the shipped templates and rules that are not there yet."""
        templates_created = 0
        for default in DEFAULT_TEMPLATES:
            try:
                await self.templates.get_active(default["template_id"])
            except TemplateNotFoundError:
                self.db.add(EmailTemplate(active=True, version=1, **default))
                templates_created += 1

        rules_created = 0
        for default in DEFAULT_RULES:
            existing = (
                await self.db.execute(
                    select(EmailRule.id).where(
                        EmailRule.trigger == default["trigger"].value,
                        EmailRule.template_id == default["template_id"],
                    )
                )
            ).first()
            if existing is None:
                self.db.add(
                    EmailRule(
                        trigger=default["trigger"].value,
                        template_id=default["template_id"],
                        delay_minutes=0,
                        active=True,
                        priority=1,
                    )
                )
                rules_created += 1

        await self.db.commit()
        logger.info(
            "Email defaults seeded: templates_created=%d rules_created=%d",
            templates_created,
            rules_created,
        )
        return SetupDefaultsResponse(templates_created=templates_created, rules_created=rules_created)
