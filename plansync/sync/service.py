"""Process-wide sync service that owns in-flight sync tasks."""

import asyncio
import logging
from typing import Any, AsyncIterator, Optional

from plansync.sync.orchestrator import SyncOrchestrator, SyncRequest
from plansync.sync.progress import ProgressChannel, encode_sse

logger = logging.getLogger(__name__)


class SyncService:
    """Starts sync invocations as background tasks.

    Tasks are held here rather than by the request handler, so a client that
    stops reading the progress stream does not cancel the chunk in flight.
    """

    def __init__(self, orchestrator: SyncOrchestrator):
        self.orchestrator = orchestrator
        self._tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> int:
        return len(self._tasks)

    def start(self, request: SyncRequest, trigger: str = "manual") -> ProgressChannel:
        """Launch a sync invocation and return the channel it reports on."""
        channel = ProgressChannel()
        task = asyncio.create_task(self._run(request, channel, trigger))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return channel

    async def _run(self, request: SyncRequest, channel: ProgressChannel, trigger: str) -> None:
        try:
            await self.orchestrator.run(request, channel, trigger=trigger)
        finally:
            await channel.close()

    async def stream(self, channel: ProgressChannel) -> AsyncIterator[str]:
        """Transport adapter: drain ``channel`` as SSE frames."""
        async for event in channel:
            yield encode_sse(event)

    async def run_to_completion(self, trigger: str = "cron", **kwargs) -> dict[str, Any]:
        return await self.orchestrator.run_to_completion(trigger=trigger, **kwargs)

    async def shutdown(self, timeout: Optional[float] = 30.0) -> None:
        """Wait for in-flight syncs, cancelling whatever outlives ``timeout``."""
        if not self._tasks:
            return
        logger.info(f"Waiting for {len(self._tasks)} in-flight sync(s)")
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
