"""Bulk sends: one template rendered for and sent to many users."""

import logging
from datetime import UTC, datetime, timedelta
from uuid import UUID

from jinja2 import TemplateError
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.config import settings
from rlly.core.exceptions import InvalidStateError, NotificationError, RecordNotFoundError
from rlly.models.email_batch import BatchStatus, EmailBatch
from rlly.models.email_metric import EmailMetric
from rlly.models.user import User
from rlly.schemas.scheduling import EmailBatchCreate
from rlly.services.email_service import EmailService
from rlly.services.template_registry import TemplateRegistry
from rlly.services.template_service import TemplateService

logger = logging.getLogger(__name__)


class BatchService:
    """Creates, schedules, processes and cancels email batches."""

    def __init__(
        self,
        db: AsyncSession,
        registry: TemplateRegistry,
        email_service: EmailService | None = None,
    ) -> None:
        self.db = db
        self.templates = TemplateService(db, registry)
        self.email_service = email_service or EmailService()

    async def get_batch(self, batch_id: UUID) -> EmailBatch:
        batch = await self.db.get(EmailBatch, batch_id)
        if batch is None:
            raise RecordNotFoundError(f"Email batch not found: {batch_id}")
        return batch

    async def list_batches(self, page: int = 1, page_size: int = 20) -> tuple[list[EmailBatch], int]:
        total = (await self.db.execute(select(func.count()).select_from(EmailBatch))).scalar() or 0
        stmt = (
            select(EmailBatch)
            .order_by(EmailBatch.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def create_batch(self, data: EmailBatchCreate) -> EmailBatch:
        """Create a draft batch. The template must exist."""
        await self.templates.get_active(data.template_id)
        user_ids = list(dict.fromkeys(str(user_id) for user_id in data.user_ids))
        batch = EmailBatch(
            name=data.name,
            template_id=data.template_id,
            user_ids=user_ids,
            event_data=data.event_data,
            scheduled_for=data.scheduled_for,
            status=BatchStatus.DRAFT,
            total_emails=len(user_ids),
            sent_emails=0,
            failed_emails=0,
            created_by=data.created_by,
        )
        self.db.add(batch)
        await self.db.commit()
        logger.info("Email batch created: id=%s template=%s recipients=%d", batch.id, batch.template_id, len(user_ids))
        return batch

    async def schedule_batch(self, batch_id: UUID, now: datetime | None = None) -> EmailBatch:
        """Move a draft to scheduled and enqueue processing at ``scheduled_for``."""
        now = now or datetime.now(UTC)
        batch = await self.get_batch(batch_id)
        if batch.status != BatchStatus.DRAFT:
            raise InvalidStateError(f"Batch {batch_id} is {batch.status.value}, only drafts can be scheduled")

        batch.status = BatchStatus.SCHEDULED
        if batch.scheduled_for is None:
            batch.scheduled_for = now
        await self.db.commit()

        from rlly.workers.tasks.notifications import process_email_batch

        if batch.scheduled_for > now:
            process_email_batch.apply_async(args=[str(batch.id)], eta=batch.scheduled_for)
        else:
            process_email_batch.delay(str(batch.id))

        logger.info("Email batch scheduled: id=%s for=%s", batch.id, batch.scheduled_for.isoformat())
        return batch

    async def cancel_batch(self, batch_id: UUID) -> EmailBatch:
        batch = await self.get_batch(batch_id)
        cancelled = await self.db.execute(
            update(EmailBatch)
            .where(
                EmailBatch.id == batch_id,
                EmailBatch.status.in_([BatchStatus.DRAFT, BatchStatus.SCHEDULED]),
            )
            .values(status=BatchStatus.CANCELLED, updated_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(batch)
        if cancelled.rowcount == 0:
            raise InvalidStateError(f"Batch {batch_id} is {batch.status.value} and cannot be cancelled")
        logger.info("Email batch cancelled: id=%s", batch_id)
        return batch

    async def process_batch(self, batch_id: UUID) -> EmailBatch | None:
        """Send the batch. Returns None when it was not in the scheduled state.

        Unknown users and users without an email address count as failed.
        """
        now = datetime.now(UTC)
        claimed = await self.db.execute(
            update(EmailBatch)
            .where(EmailBatch.id == batch_id, EmailBatch.status == BatchStatus.SCHEDULED)
            .values(status=BatchStatus.PROCESSING, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if claimed.rowcount == 0:
            logger.info("Email batch not processable: id=%s", batch_id)
            return None

        batch = await self.get_batch(batch_id)
        await self.db.refresh(batch)

        try:
            template = await self.templates.get_active(batch.template_id)
        except NotificationError:
            logger.exception("Email batch template unavailable: id=%s template=%s", batch.id, batch.template_id)
            batch.failed_emails = batch.total_emails - batch.sent_emails
            return await self._complete(batch)

        for raw_user_id in batch.user_ids:
            user = await self.db.get(User, UUID(raw_user_id))
            error: str | None = None
            message_id: str | None = None
            if user is None or not user.email:
                error = "Recipient not found or has no email address"
            else:
                data = {**batch.event_data, "email": user.email, "user_name": user.display_name}
                try:
                    rendered = self.templates.renderer.render(template, data)
                    message_id = await self.email_service.send_email(
                        to=user.email,
                        subject=rendered.subject,
                        html=rendered.html,
                        text=rendered.plain_text,
                        tags=[{"name": "batch_id", "value": str(batch.id)}],
                    )
                except (NotificationError, TemplateError) as exc:
                    error = str(exc)
                except Exception as exc:
                    logger.exception(
                        "Unexpected error sending batch email: batch=%s user=%s", batch.id, raw_user_id
                    )
                    error = f"{type(exc).__name__}: {exc}"

            if error is None:
                batch.sent_emails += 1
            else:
                batch.failed_emails += 1
                logger.warning("Batch email failed: batch=%s user=%s error=%s", batch.id, raw_user_id, error)

            self.db.add(
                EmailMetric(
                    email_id=message_id or ("failed" if error else "unknown"),
                    user_id=UUID(raw_user_id),
                    template_id=batch.template_id,
                    batch_id=batch.id,
                    sent_at=datetime.now(UTC),
                    error=error,
                )
            )
            await self.db.commit()

        return await self._complete(batch)

    async def finalize_stuck(self, now: datetime | None = None) -> int:
        """Complete batches whose processing run died part way.

        Recipients without a recorded outcome are counted as failed.
        """
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(seconds=settings.processing_timeout_seconds)
        result = await self.db.execute(
            select(EmailBatch).where(
                EmailBatch.status == BatchStatus.PROCESSING,
                EmailBatch.updated_at <= cutoff,
            ).execution_options(populate_existing=True)
        )
        stuck = list(result.scalars().all())
        for batch in stuck:
            logger.warning(
                "Finalizing interrupted email batch: id=%s sent=%d failed=%d total=%d",
                batch.id,
                batch.sent_emails,
                batch.failed_emails,
                batch.total_emails,
            )
            batch.failed_emails = batch.total_emails - batch.sent_emails
            await self._complete(batch)
        return len(stuck)

    async def _complete(self, batch: EmailBatch) -> EmailBatch:
        batch.status = BatchStatus.COMPLETED
        batch.completed_at = datetime.now(UTC)
        await self.db.commit()
        logger.info(
            "Email batch completed: id=%s sent=%d failed=%d total=%d",
            batch.id,
            batch.sent_emails,
            batch.failed_emails,
            batch.total_emails,
        )
        return batch
