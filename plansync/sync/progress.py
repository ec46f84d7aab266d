"""Progress channel between the sync orchestrator and its transport."""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Optional

logger = logging.getLogger(__name__)

_CLOSED = object()


class ProgressChannel:
    """Queue of structured progress events.

    The orchestrator writes ``{"message": ...}`` events and exactly one
    terminal event; a transport adapter drains the channel and encodes the
    events for the wire. Events are also logged so that a run stays
    traceable when nobody is reading the stream.
    """

    def __init__(self, log: Optional[logging.Logger] = None, stream: bool = True):
        self._queue: asyncio.Queue = asyncio.Queue()
        self.stream = stream
        self._closed = False
        self.log = log or logger
        self.terminal: Optional[dict[str, Any]] = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, message: str, level: int = logging.INFO) -> None:
        self.log.log(level, message)
        if self.stream and not self._closed:
            await self._queue.put({"message": message})

    async def warn(self, message: str) -> None:
        await self.emit(message, level=logging.WARNING)

    async def finish(self, payload: dict[str, Any]) -> None:
        """Send the terminal event and close the channel."""
        if self._closed:
            return
        self.terminal = payload
        if self.stream:
            await self._queue.put(payload)
        await self.close()

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._queue.put(_CLOSED)

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self._drain()

    async def _drain(self) -> AsyncIterator[dict[str, Any]]:
        while True:
            event = await self._queue.get()
            if event is _CLOSED:
                return
            yield event


def encode_sse(event: dict[str, Any]) -> str:
    """Encode one event as a server-sent-events data frame."""
    return f"data: {json.dumps(event, default=str)}\n\n"
