import pytest

from app.jobs import worker
from app.jobs import scheduled_message_job as scheduler_module
from app.jobs.scheduled_message_job import ScheduledMessageJob


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"ok": False}

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy")

    assert called["ok"] is True


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_scheduled_messages_job_is_registered():
    assert "scheduled_messages" in worker.JOB_REGISTRY


@pytest.mark.asyncio
async def test_scheduled_job_run_once_reports_summary():
    class FakeService:
        async def process_due_jobs(self):
            return {"due": 2, "completed": 1, "failed": 1, "skipped": 0}

    job = ScheduledMessageJob(service=FakeService())

    summary = await job.run_once()

    assert summary["completed"] == 1
    assert job.get_status()["last_summary"] == summary
    assert job.is_running is False


@pytest.mark.asyncio
async def test_scheduled_job_run_once_captures_errors():
    class BrokenService:
        async def process_due_jobs(self):
            raise RuntimeError("redis gone")

    summary = await ScheduledMessageJob(service=BrokenService()).run_once()

    assert summary == {"job_error": "redis gone"}


class _StopLoop(Exception):
    pass


@pytest.mark.asyncio
async def test_scheduler_cycle_logs_job_status(monkeypatch):
    class FakeService:
        async def process_due_jobs(self):
            return {"due": 1, "completed": 1, "failed": 0, "skipped": 0}

    class RecordingLogger:
        def __init__(self):
            self.events = []

        def info(self, event, **fields):
            self.events.append((event, fields))

        def error(self, event, **fields):
            self.events.append((event, fields))

    async def stop_sleep(seconds):
        raise _StopLoop()

    async def noop():
        return None

    recorder = RecordingLogger()
    monkeypatch.setattr(
        scheduler_module, "scheduled_message_job", ScheduledMessageJob(FakeService())
    )
    monkeypatch.setattr(scheduler_module, "logger", recorder)
    monkeypatch.setattr("app.jobs.scheduled_message_job.fast_redis.initialize", noop)
    monkeypatch.setattr("app.jobs.scheduled_message_job.fast_redis.close", noop)
    monkeypatch.setattr("app.jobs.scheduled_message_job.asyncio.sleep", stop_sleep)

    with pytest.raises(_StopLoop):
        await scheduler_module.start_scheduled_message_scheduler()

    cycle = dict(recorder.events)["Scheduled message sweep cycle completed"]
    assert cycle["last_summary"]["completed"] == 1
    assert cycle["is_running"] is False
