"""Scheduled sync tasks."""

import logging

from plansync.sync.service import SyncService

logger = logging.getLogger(__name__)


class TaskRunner:
    """Runs the nightly full sync through the shared sync service."""

    def __init__(self, service: SyncService):
        self.service = service

    async def nightly_sync(self) -> dict:
        """Sync every top retailer to completion."""
        logger.info("Starting scheduled plan sync")
        try:
            summary = await self.service.run_to_completion(trigger="scheduler")
        except Exception as e:
            logger.error(f"Scheduled plan sync failed: {e}", exc_info=True)
            raise
        logger.info(
            f"Scheduled plan sync finished: {summary['totalPlans']} plans in {summary['duration']}s"
        )
        return summary
