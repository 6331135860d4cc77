"""
Message job lifecycle: creation, due-check, pickup and dispatch.

pending --(not due)--> pending
pending --(due, claimed)--> processing --> completed | failed

The claim and the processing status are written before any recipient lookup,
so a job is dispatched at most once even if two triggers race.
"""

from datetime import UTC, datetime

from app.infrastructure.observability.logging import get_logger
from app.models.domain.messaging_domain import MessageContent, MessageJob, MessageTarget
from app.repositories.message_repository import (
    MessageRepository,
    MessageRepositoryError,
    message_repository,
)
from app.services.messaging.batch_dispatcher import BatchDispatcher, batch_dispatcher
from app.services.messaging.target_resolver import TargetResolver, target_resolver

logger = get_logger(__name__)

NO_TARGETS_ERROR = "No target users found"


class MessageJobService:
    def __init__(
        self,
        repository: MessageRepository | None = None,
        resolver: TargetResolver | None = None,
        dispatcher: BatchDispatcher | None = None,
    ):
        self.repository = repository or message_repository
        self.resolver = resolver or target_resolver
        self.dispatcher = dispatcher or batch_dispatcher

    async def create_job(
        self,
        content: MessageContent,
        target: MessageTarget,
        scheduled_at: datetime | None = None,
        created_by: str | None = None,
    ) -> MessageJob:
        return await self.repository.create(content, target, scheduled_at, created_by)

    async def process_job(self, job_id: str, now: datetime | None = None) -> MessageJob | None:
        """
        Pick up and process one job if it is pending and due.

        Returns:
            The job's latest state, or None if it does not exist
        """
        job = await self.repository.get(job_id)
        if job is None:
            logger.warning("Message job not found", message_id=job_id)
            return None

        if job.status != "pending":
            logger.info("Message job already picked up", message_id=job_id, status=job.status)
            return job

        now = now or datetime.now(UTC)
        if not job.is_due(now):
            logger.info(
                "Scheduled message not yet due",
                message_id=job_id,
                scheduled_at=job.scheduled_at.isoformat(),
            )
            return job

        if not await self.repository.claim(job_id):
            logger.info("Message job claimed by another worker", message_id=job_id)
            return job

        try:
            job = await self.repository.update(job_id, status="processing", processed_at=now)
            if job.scheduled_at is not None:
                await self.repository.unschedule(job_id)
            logger.info("Message job processing", message_id=job_id)

            recipients = await self.resolver.resolve(job.target)

            if not recipients:
                logger.info("No target users found", message_id=job_id)
                return await self.repository.update(
                    job_id,
                    status="completed",
                    total_recipients=0,
                    success_count=0,
                    error=NO_TARGETS_ERROR,
                )

            result = await self.dispatcher.dispatch(recipients, job.content)

            job = await self.repository.update(
                job_id,
                status="completed" if result.all_success else "failed",
                total_recipients=len(recipients),
                success_count=result.success_count,
                failed_recipient_ids=result.failed_user_ids,
                error=result.error,
            )
            logger.info(
                "Message job finished",
                message_id=job_id,
                status=job.status,
                success_count=result.success_count,
                total=len(recipients),
            )
            return job

        except Exception as e:
            logger.error(
                "Message job processing error",
                message_id=job_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return await self._record_failure(job, str(e) or type(e).__name__)

    async def _record_failure(self, job: MessageJob, error: str) -> MessageJob:
        """
        Mark a claimed job failed. If even that write is lost, release the claim
        so the still-pending job can be picked up again.
        """
        try:
            failed = await self.repository.update(
                job.id, status="failed", error=error, processed_at=datetime.now(UTC)
            )
        except MessageRepositoryError as e:
            logger.error("Could not record message job failure", message_id=job.id, error=str(e))
            await self.repository.release_claim(job.id)
            return job

        if job.scheduled_at is not None:
            await self.repository.unschedule(job.id)
        return failed

    async def process_due_jobs(self, now: datetime | None = None) -> dict:
        """Process every scheduled job whose time has come."""
        now = now or datetime.now(UTC)
        job_ids = await self.repository.due_scheduled_ids(now.timestamp())

        summary = {"due": len(job_ids), "completed": 0, "failed": 0, "skipped": 0}
        for job_id in job_ids:
            job = await self.process_job(job_id, now=now)
            if job is None or not job.is_terminal():
                summary["skipped"] += 1
                if job is None or job.status != "pending":
                    await self.repository.unschedule(job_id)
            else:
                summary[job.status] += 1

        if job_ids:
            logger.info("Scheduled message sweep finished", **summary)
        return summary

    async def list_recent(self, limit: int = 20) -> list[MessageJob]:
        return await self.repository.list_recent(limit)


message_job_service = MessageJobService()


# Convenience functions for easy import
async def create_message_job(
    content: MessageContent,
    target: MessageTarget,
    scheduled_at: datetime | None = None,
    created_by: str | None = None,
) -> MessageJob:
    return await message_job_service.create_job(content, target, scheduled_at, created_by)


async def process_message_job(job_id: str) -> MessageJob | None:
    return await message_job_service.process_job(job_id)


async def list_recent_messages(limit: int = 20) -> list[MessageJob]:
    return await message_job_service.list_recent(limit)
