from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

from shared.events.ingestion_events import IngestionProgressEvent

ProgressCallback = Callable[[IngestionProgressEvent], object]

_CLOSED = object()


class ProgressStream:
    """Push-based channel of ingestion progress events.

    Pass an instance as ``on_progress`` and consume it with ``async for``.
    The stream ends after a terminal stage (completed or error). Producers
    never block: the queue is unbounded.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False
        self.history: list[IngestionProgressEvent] = []

    def __call__(self, event: IngestionProgressEvent) -> None:
        if self._closed:
            return
        self.history.append(event)
        self._queue.put_nowait(event)
        if event.stage.is_terminal:
            self.close()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[IngestionProgressEvent]:
        return self._drain()

    async def _drain(self) -> AsyncIterator[IngestionProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]
