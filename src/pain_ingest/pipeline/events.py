"""Ordered progress channel between a run and its consumer."""

import asyncio
import logging
from typing import Any

from pain_ingest.data import ProgressEvent

logger = logging.getLogger(__name__)


class ProgressChannel:
    """Single-consumer, unbounded, ordered stream of ``ProgressEvent``.

    The producer calls ``emit`` (never blocks) and ``close`` once it is done;
    the consumer iterates with ``async for`` until the channel is closed and
    drained. Events come out in exactly the order they were emitted.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._closed = False
        self._emitted = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def emitted(self) -> int:
        """Number of events emitted so far."""
        return self._emitted

    def emit(self, event: ProgressEvent) -> None:
        if self._closed:
            raise RuntimeError("Cannot emit on a closed progress channel")
        logger.debug("[%s] %s", event.step, event.message)
        self._emitted += 1
        self._queue.put_nowait(event)

    def progress(self, step: str, message: str, data: dict[str, Any] | None = None) -> None:
        """Emit a ``progress`` event."""
        self.emit(ProgressEvent(step=step, message=message, data=data))

    def close(self) -> None:
        """Mark the end of the stream; further ``close`` calls are ignored."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    def __aiter__(self) -> "ProgressChannel":
        return self

    async def __anext__(self) -> ProgressEvent:
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event
