"""Request pacing for CDR endpoints.

One RequestPacer is constructed per process and handed to every component
that calls the upstream API, so the spacing between calls holds across
retailer syncs and chunk invocations.
"""

import asyncio
import logging
import time
from collections import defaultdict
from typing import Optional

logger = logging.getLogger(__name__)


class RequestPacer:
    """Minimum-interval limiter keyed by endpoint host (or any key)."""

    def __init__(self, min_interval: float = 0.1):
        self.min_interval = min_interval
        self.locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.last_request: dict[str, float] = {}
        self.cooldowns: dict[str, float] = {}  # key -> monotonic time the cooldown ends

    async def wait(self, key: str, min_interval: Optional[float] = None) -> float:
        """
        Block until a request for ``key`` may be sent.

        Args:
            key: Pacing key (usually the retailer slug)
            min_interval: Override for the configured interval

        Returns:
            Seconds actually waited
        """
        interval = self.min_interval if min_interval is None else min_interval
        waited = 0.0

        async with self.locks[key]:
            now = time.monotonic()

            cooldown_until = self.cooldowns.get(key, 0.0)
            if now < cooldown_until:
                pause = cooldown_until - now
                logger.debug(f"{key} in cooldown, waiting {pause:.1f}s")
                await asyncio.sleep(pause)
                waited += pause
                now = time.monotonic()

            last = self.last_request.get(key)
            if last is not None and interval > 0:
                wait_needed = max(0.0, interval - (now - last))
                if wait_needed > 0:
                    await asyncio.sleep(wait_needed)
                    waited += wait_needed

            self.last_request[key] = time.monotonic()

        return waited

    def set_cooldown(self, key: str, seconds: float) -> None:
        """Hold back requests for ``key`` for the given number of seconds."""
        self.cooldowns[key] = time.monotonic() + seconds

    def reset(self, key: str) -> None:
        """Forget pacing history for a key (start of a new chunk)."""
        self.last_request.pop(key, None)
