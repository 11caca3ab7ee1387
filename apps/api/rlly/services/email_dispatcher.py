"""Delayed-send queue: claims due scheduled emails and delivers them.

Status transitions::

    pending -> processing -> sent | failed
    processing -> pending        (retryable delivery failure, with backoff)
    processing -> pending|failed (claim older than processing_timeout_seconds)
    pending -> cancelled | expired

A record is only ever attempted by the dispatcher that moved it from
``pending`` to ``processing``; a concurrent dispatcher sees rowcount 0 on the
same conditional update and skips it.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Literal
from uuid import UUID

from jinja2 import TemplateError
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.config import settings
from rlly.core.exceptions import (
    EmailDeliveryError,
    InvalidStateError,
    NotificationError,
    RecordNotFoundError,
)
from rlly.models.email_event import notification_category
from rlly.models.email_metric import EmailMetric, RuleMetric
from rlly.models.scheduled_email import ScheduledEmail, ScheduleStatus
from rlly.models.user import User
from rlly.schemas.scheduling import DispatchRunResult, ProcessingStats
from rlly.services.email_service import EmailService
from rlly.services.preference_service import build_unsubscribe_url
from rlly.services.template_registry import TemplateRegistry
from rlly.services.template_service import TemplateService

logger = logging.getLogger(__name__)

DeliveryOutcome = Literal["sent", "retried", "failed", "skipped"]


def retry_backoff(attempts: int) -> timedelta:
    """Delay before the next attempt after ``attempts`` failures."""
    return timedelta(minutes=settings.retry_backoff_minutes * 2 ** max(attempts - 1, 0))


class EmailDispatcher:
    """Delivers ScheduledEmail records through the mail provider."""

    def __init__(
        self,
        db: AsyncSession,
        registry: TemplateRegistry,
        email_service: EmailService | None = None,
    ) -> None:
        self.db = db
        self.templates = TemplateService(db, registry)
        self.email_service = email_service or EmailService()

    # --- Queue passes --------------------------------------------------------

    async def run_due(self, now: datetime | None = None, limit: int | None = None) -> DispatchRunResult:
        """Expire stale records, then deliver every due pending record."""
        now = now or datetime.now(UTC)
        result = DispatchRunResult(
            expired=await self.expire_stale(now),
            reclaimed=await self.reclaim_stuck(now),
        )

        stmt = (
            select(ScheduledEmail.id)
            .where(
                ScheduledEmail.status == ScheduleStatus.PENDING,
                ScheduledEmail.scheduled_for <= now,
            )
            .order_by(ScheduledEmail.scheduled_for)
            .limit(limit or settings.dispatch_batch_size)
        )
        due_ids = list((await self.db.execute(stmt)).scalars().all())

        for scheduled_id in due_ids:
            outcome = await self.deliver(scheduled_id, now=now)
            if outcome != "skipped":
                result.claimed += 1
            setattr(result, outcome, getattr(result, outcome) + 1)

        if due_ids or result.expired or result.reclaimed:
            logger.info(
                "Dispatch run: expired=%d reclaimed=%d claimed=%d sent=%d retried=%d failed=%d skipped=%d",
                result.expired,
                result.reclaimed,
                result.claimed,
                result.sent,
                result.retried,
                result.failed,
                result.skipped,
            )
        return result

    async def expire_stale(self, now: datetime | None = None) -> int:
        """Mark pending records past their expiry as expired."""
        now = now or datetime.now(UTC)
        expired = await self.db.execute(
            update(ScheduledEmail)
            .where(
                ScheduledEmail.status == ScheduleStatus.PENDING,
                ScheduledEmail.expires_at <= now,
            )
            .values(status=ScheduleStatus.EXPIRED, error="Expired before delivery", updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if expired.rowcount:
            logger.warning("Expired %d scheduled emails", expired.rowcount)
        return expired.rowcount or 0

    async def reclaim_stuck(self, now: datetime | None = None) -> int:
        """Release claims whose worker never finished.

        A record still ``processing`` after ``processing_timeout_seconds`` lost
        its worker mid-attempt. The attempt counts: the record goes back to
        ``pending`` with backoff, or to ``failed`` once attempts run out.
        """
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(seconds=settings.processing_timeout_seconds)
        stmt = select(ScheduledEmail).where(
            ScheduledEmail.status == ScheduleStatus.PROCESSING,
            ScheduledEmail.last_attempt_at <= cutoff,
        ).execution_options(populate_existing=True)
        stuck = list((await self.db.execute(stmt)).scalars().all())
        for scheduled in stuck:
            logger.warning(
                "Reclaiming interrupted delivery: id=%s claimed_at=%s",
                scheduled.id,
                scheduled.last_attempt_at.isoformat() if scheduled.last_attempt_at else None,
            )
            await self._record_failure(scheduled, "Delivery interrupted while processing", now, retryable=True)
        return len(stuck)

    # --- Single record -------------------------------------------------------

    async def claim(self, scheduled_id: UUID, now: datetime) -> bool:
        """Move a due record from pending to processing. False if someone else did."""
        claimed = await self.db.execute(
            update(ScheduledEmail)
            .where(
                ScheduledEmail.id == scheduled_id,
                ScheduledEmail.status == ScheduleStatus.PENDING,
                ScheduledEmail.scheduled_for <= now,
                ScheduledEmail.expires_at > now,
            )
            .values(status=ScheduleStatus.PROCESSING, last_attempt_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return claimed.rowcount == 1

    async def deliver(self, scheduled_id: UUID, now: datetime | None = None) -> DeliveryOutcome:
        """Attempt one scheduled email.

        Returns ``"skipped"`` when the record is not pending and due (already
        claimed elsewhere, terminal, or not yet due).
        """
        now = now or datetime.now(UTC)
        if not await self.claim(scheduled_id, now):
            logger.debug("Scheduled email not claimable: id=%s", scheduled_id)
            return "skipped"

        scheduled = await self.db.get(ScheduledEmail, scheduled_id, populate_existing=True)
        if scheduled is None:
            return "skipped"

        try:
            message_id = await self._send(scheduled)
        except EmailDeliveryError as exc:
            return await self._record_failure(scheduled, str(exc), now, retryable=True)
        except (NotificationError, TemplateError) as exc:
            return await self._record_failure(scheduled, str(exc), now, retryable=False)
        except Exception as exc:
            # Never leave a claimed record in processing
            logger.exception("Unexpected error delivering scheduled email: id=%s", scheduled_id)
            await self.db.rollback()
            scheduled = await self.db.get(ScheduledEmail, scheduled_id, populate_existing=True)
            if scheduled is None:
                return "skipped"
            return await self._record_failure(
                scheduled, f"{type(exc).__name__}: {exc}", now, retryable=True
            )

        scheduled.status = ScheduleStatus.SENT
        scheduled.attempts += 1
        scheduled.sent_at = now
        scheduled.provider_message_id = message_id
        scheduled.error = None
        self._log_metric(scheduled, message_id or "unknown", now)
        await self._bump_rule_metric(scheduled.rule_id, sent=True)
        await self.db.commit()
        logger.info(
            "Scheduled email sent: id=%s template=%s user=%s attempt=%d",
            scheduled.id,
            scheduled.template_id,
            scheduled.user_id,
            scheduled.attempts,
        )
        return "sent"

    async def _send(self, scheduled: ScheduledEmail) -> str | None:
        user = await self.db.get(User, scheduled.user_id)
        if user is None:
            raise RecordNotFoundError(f"Recipient not found: {scheduled.user_id}")
        recipient = scheduled.event_data.get("email") or user.email
        if not recipient:
            raise RecordNotFoundError(f"Recipient has no email address: {scheduled.user_id}")

        template = await self.templates.get_active(scheduled.template_id)
        context: dict[str, Any] = {}
        if scheduled.event_type:
            context["unsubscribe_url"] = build_unsubscribe_url(
                scheduled.user_id, notification_category(scheduled.event_type)
            )
        data = {**scheduled.event_data, "email": recipient}
        rendered = self.templates.renderer.render(template, data, context)

        tags = [
            {"name": "template", "value": scheduled.template_id},
            {"name": "scheduled_email_id", "value": str(scheduled.id)},
        ]
        return await self.email_service.send_email(
            to=recipient,
            subject=rendered.subject,
            html=rendered.html,
            text=rendered.plain_text,
            tags=tags,
        )

    async def _record_failure(
        self,
        scheduled: ScheduledEmail,
        error: str,
        now: datetime,
        *,
        retryable: bool,
    ) -> DeliveryOutcome:
        scheduled.attempts += 1
        scheduled.error = error[:2000]

        if retryable and scheduled.attempts < scheduled.max_attempts:
            scheduled.status = ScheduleStatus.PENDING
            scheduled.scheduled_for = now + retry_backoff(scheduled.attempts)
            # Keep the retry inside the expiry window
            if scheduled.expires_at <= scheduled.scheduled_for:
                scheduled.expires_at = scheduled.scheduled_for + timedelta(
                    hours=settings.scheduled_email_expiry_hours
                )
            await self.db.commit()
            logger.warning(
                "Scheduled email delivery failed, retrying: id=%s attempt=%d/%d next=%s error=%s",
                scheduled.id,
                scheduled.attempts,
                scheduled.max_attempts,
                scheduled.scheduled_for.isoformat(),
                error,
            )
            return "retried"

        scheduled.status = ScheduleStatus.FAILED
        self._log_metric(scheduled, "failed", now, error=error)
        await self._bump_rule_metric(scheduled.rule_id, sent=False)
        await self.db.commit()
        logger.error(
            "Scheduled email failed: id=%s attempts=%d/%d retryable=%s error=%s",
            scheduled.id,
            scheduled.attempts,
            scheduled.max_attempts,
            retryable,
            error,
        )
        return "failed"

    def _log_metric(
        self,
        scheduled: ScheduledEmail,
        email_id: str,
        now: datetime,
        error: str | None = None,
    ) -> None:
        self.db.add(
            EmailMetric(
                email_id=email_id,
                user_id=scheduled.user_id,
                template_id=scheduled.template_id,
                rule_id=scheduled.rule_id,
                scheduled_email_id=scheduled.id,
                event_type=scheduled.event_type,
                sent_at=now,
                error=error,
                metadata_={"attempts": scheduled.attempts},
            )
        )

    async def _bump_rule_metric(self, rule_id: UUID | None, *, sent: bool) -> None:
        if rule_id is None:
            return
        values = (
            {"successful_sends": RuleMetric.successful_sends + 1}
            if sent
            else {"failed_sends": RuleMetric.failed_sends + 1}
        )
        await self.db.execute(
            update(RuleMetric)
            .where(RuleMetric.rule_id == rule_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    # --- Management ----------------------------------------------------------

    async def get(self, scheduled_id: UUID) -> ScheduledEmail:
        scheduled = await self.db.get(ScheduledEmail, scheduled_id)
        if scheduled is None:
            raise RecordNotFoundError(f"Scheduled email not found: {scheduled_id}")
        return scheduled

    async def cancel(self, scheduled_id: UUID) -> ScheduledEmail:
        """Cancel a pending record. Anything already claimed runs to completion."""
        now = datetime.now(UTC)
        cancelled = await self.db.execute(
            update(ScheduledEmail)
            .where(
                ScheduledEmail.id == scheduled_id,
                ScheduledEmail.status == ScheduleStatus.PENDING,
            )
            .values(status=ScheduleStatus.CANCELLED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        scheduled = await self.db.get(ScheduledEmail, scheduled_id, populate_existing=True)
        if scheduled is None:
            raise RecordNotFoundError(f"Scheduled email not found: {scheduled_id}")
        if cancelled.rowcount == 0:
            raise InvalidStateError(
                f"Scheduled email {scheduled_id} is {scheduled.status.value}, only pending emails can be cancelled"
            )
        logger.info("Scheduled email cancelled: id=%s", scheduled_id)
        return scheduled

    async def list_scheduled(
        self,
        *,
        status: ScheduleStatus | None = None,
        user_id: UUID | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[ScheduledEmail], int]:
        """Paginated scheduled emails, soonest first."""
        filters = []
        if status is not None:
            filters.append(ScheduledEmail.status == status)
        if user_id is not None:
            filters.append(ScheduledEmail.user_id == user_id)

        count_stmt = select(func.count()).select_from(ScheduledEmail).where(*filters)
        total = (await self.db.execute(count_stmt)).scalar() or 0

        stmt = (
            select(ScheduledEmail)
            .where(*filters)
            .order_by(ScheduledEmail.scheduled_for)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def get_stats(self) -> ProcessingStats:
        """Counts of scheduled emails per status."""
        stmt = select(ScheduledEmail.status, func.count()).group_by(ScheduledEmail.status)
        rows = (await self.db.execute(stmt)).all()
        counts = {status.value: count for status, count in rows}
        return ProcessingStats(total_scheduled=sum(counts.values()), **counts)
