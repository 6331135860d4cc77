"""
Storage for outbound message jobs.

Keys:
    message_job:{id}          job document (JSON)
    message_jobs:recent       sorted set, score = created_at timestamp
    message_jobs:scheduled    sorted set of pending scheduled jobs, score = scheduled_at
    message_job_claim:{id}    processing claim, written with SET NX
"""

import uuid
from typing import Any

from app.infrastructure.observability.logging import get_logger
from app.models.domain.messaging_domain import MessageContent, MessageJob, MessageTarget
from app.services.redis_client import fast_redis

logger = get_logger(__name__)

JOB_KEY_PREFIX = "message_job"
CLAIM_KEY_PREFIX = "message_job_claim"
RECENT_JOBS_KEY = "message_jobs:recent"
SCHEDULED_JOBS_KEY = "message_jobs:scheduled"


class MessageRepositoryError(Exception):
    """Raised when a job document cannot be written."""


class MessageRepository:
    def __init__(self, redis=None):
        self._redis = redis

    @property
    def redis(self):
        return self._redis or fast_redis

    def _key(self, job_id: str) -> str:
        return f"{JOB_KEY_PREFIX}:{job_id}"

    async def create(
        self,
        content: MessageContent,
        target: MessageTarget,
        scheduled_at=None,
        created_by: str | None = None,
    ) -> MessageJob:
        job = MessageJob(
            id=uuid.uuid4().hex,
            content=content,
            target=target,
            scheduled_at=scheduled_at,
            created_by=created_by,
        )
        await self._write(job)
        await self.redis.zadd(RECENT_JOBS_KEY, job.id, job.created_at.timestamp())
        if job.scheduled_at is not None:
            await self.redis.zadd(SCHEDULED_JOBS_KEY, job.id, job.scheduled_at.timestamp())

        logger.info(
            "Message job created",
            message_id=job.id,
            target_type=target.type,
            scheduled=job.scheduled_at is not None,
        )
        return job

    async def get(self, job_id: str) -> MessageJob | None:
        raw = await self.redis.get(self._key(job_id))
        if raw is None:
            return None
        return MessageJob.model_validate_json(raw)

    async def update(self, job_id: str, **changes: Any) -> MessageJob:
        """Read-modify-write of a single job document."""
        job = await self.get(job_id)
        if job is None:
            raise MessageRepositoryError(f"Message job {job_id} not found")
        updated = job.model_copy(update=changes)
        await self._write(updated)
        return updated

    async def claim(self, job_id: str) -> bool:
        """
        Compare-and-set guard for the pending -> processing transition.
        Only the first caller for a given job gets True.
        """
        return await self.redis.set_nx(f"{CLAIM_KEY_PREFIX}:{job_id}", "1")

    async def release_claim(self, job_id: str) -> None:
        await self.redis.delete(f"{CLAIM_KEY_PREFIX}:{job_id}")

    async def list_recent(self, limit: int = 20) -> list[MessageJob]:
        job_ids = await self.redis.zrevrange(RECENT_JOBS_KEY, 0, max(limit, 1) - 1)
        raws = await self.redis.mget([self._key(job_id) for job_id in job_ids])
        return [MessageJob.model_validate_json(raw) for raw in raws if raw]

    async def due_scheduled_ids(self, now_ts: float) -> list[str]:
        return await self.redis.zrangebyscore(SCHEDULED_JOBS_KEY, float("-inf"), now_ts)

    async def unschedule(self, job_id: str) -> None:
        await self.redis.zrem(SCHEDULED_JOBS_KEY, job_id)

    async def _write(self, job: MessageJob) -> None:
        if not await self.redis.set_with_ttl(self._key(job.id), job.model_dump_json()):
            raise MessageRepositoryError(f"Failed to write message job {job.id}")


message_repository = MessageRepository()
