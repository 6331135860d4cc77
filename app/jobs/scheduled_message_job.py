"""
Scheduled Message Job.
Sweeps message jobs whose scheduled time has passed and hands them to the
job processor. Pickup is claim-guarded, so overlapping sweeps are harmless.
"""

import asyncio
from datetime import UTC, datetime

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.services.messaging.message_job_service import MessageJobService, message_job_service
from app.services.redis_client import fast_redis

logger = get_logger(__name__)

ERROR_BACKOFF_SECONDS = 300


class ScheduledMessageJob:
    """Runs one sweep at a time and remembers how the last one went."""

    def __init__(self, service: MessageJobService | None = None):
        self.service = service or message_job_service
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.last_summary: dict | None = None

    async def run_once(self) -> dict:
        if self.is_running:
            logger.warning("Scheduled message sweep already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            summary = await self.service.process_due_jobs()
            self.last_run_time = datetime.now(UTC)
            self.last_summary = summary
            return summary

        except Exception as e:
            logger.error(
                "Scheduled message sweep failed", error=str(e), error_type=type(e).__name__
            )
            return {"job_error": str(e)}

        finally:
            self.is_running = False

    def get_status(self) -> dict:
        return {
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "last_summary": self.last_summary,
            "interval_seconds": settings.SCHEDULER_INTERVAL_SECONDS,
        }


scheduled_message_job = ScheduledMessageJob()


async def run_scheduled_message_job() -> dict:
    return await scheduled_message_job.run_once()


def get_scheduled_message_job_status() -> dict:
    return scheduled_message_job.get_status()


async def start_scheduled_message_scheduler():
    """
    Sweep due scheduled messages forever.

    Meant to run in its own process through app.jobs.worker.
    """
    interval = settings.SCHEDULER_INTERVAL_SECONDS
    logger.info("Starting scheduled message scheduler", interval_seconds=interval)

    await fast_redis.initialize()
    try:
        while True:
            try:
                summary = await run_scheduled_message_job()
                if "job_error" in summary:
                    await asyncio.sleep(ERROR_BACKOFF_SECONDS)
                    continue

                if summary.get("due"):
                    logger.info(
                        "Scheduled message sweep cycle completed",
                        **get_scheduled_message_job_status(),
                    )

                await asyncio.sleep(interval)

            except Exception as e:
                logger.error(
                    "Error in scheduled message scheduler",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)
    finally:
        await fast_redis.close()
