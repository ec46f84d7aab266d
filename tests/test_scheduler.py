"""Tests for the nightly sync job wiring."""

import pytest

from plansync.config import settings
from plansync.worker.scheduler import setup_scheduler
from plansync.worker.tasks import TaskRunner


class StubService:
    def __init__(self, summary=None, error=None):
        self.summary = summary
        self.error = error
        self.calls = []

    async def run_to_completion(self, trigger="cron", **kwargs):
        self.calls.append(trigger)
        if self.error:
            raise self.error
        return self.summary


def test_nightly_job_is_registered():
    scheduler = setup_scheduler(StubService())

    job = scheduler.get_job("nightly_plan_sync")

    assert job is not None
    assert job.max_instances == 1
    assert str(job.trigger.fields[5]) == str(settings.cron_sync_hour)  # hour field


@pytest.mark.asyncio
async def test_nightly_sync_runs_to_completion():
    service = StubService(summary={"totalPlans": 12, "duration": 3})

    summary = await TaskRunner(service).nightly_sync()

    assert summary["totalPlans"] == 12
    assert service.calls == ["scheduler"]


@pytest.mark.asyncio
async def test_nightly_sync_propagates_failures():
    service = StubService(error=RuntimeError("db down"))

    with pytest.raises(RuntimeError, match="db down"):
        await TaskRunner(service).nightly_sync()
