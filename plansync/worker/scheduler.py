"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from plansync.config import settings
from plansync.sync.service import SyncService
from plansync.worker.tasks import TaskRunner

logger = logging.getLogger(__name__)


def setup_scheduler(service: SyncService) -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    Args:
        service: Sync service the nightly job runs through

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler()
    task_runner = TaskRunner(service)

    # Nightly full sync of the top retailers
    scheduler.add_job(
        task_runner.nightly_sync,
        CronTrigger(hour=settings.cron_sync_hour, minute=0),
        id="nightly_plan_sync",
        name="Sync CDR energy plans",
        max_instances=1,  # Prevent overlapping runs
        coalesce=True,
        misfire_grace_time=3600,
        replace_existing=True,
    )

    logger.info(f"Scheduler configured: plan sync daily at {settings.cron_sync_hour:02d}:00")

    return scheduler
