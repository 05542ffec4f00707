"""
Asyncio-backed response sink for Starlette streaming responses.

Monitor callbacks run on whatever thread recorded the event, so writes are
handed to the event loop with ``call_soon_threadsafe``. A slow reader never
blocks the writer: messages are dropped once the queue is full.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256


class QueueSink:
    """ResponseSink that feeds an async generator consumed by StreamingResponse."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None, max_queue_size: int = DEFAULT_QUEUE_SIZE):
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=max_queue_size)
        self._callbacks: list[Callable[[], None]] = []
        self._closed = False
        self._closing = False
        self.headers: dict[str, str] = {}
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def media_type(self) -> str:
        return self.headers.get("Content-Type", "text/event-stream")

    def set_headers(self, headers: dict[str, str]) -> None:
        self.headers.update(headers)

    def write(self, data: str) -> None:
        if self._closed:
            raise ConnectionError("SSE client connection is closed")
        self._loop.call_soon_threadsafe(self._put, data)

    def end(self) -> None:
        if self._closed or self._closing:
            return
        self._closing = True
        if self._loop.is_closed():
            self._closed = True
            return
        self._loop.call_soon_threadsafe(self._put_sentinel)

    def on_close(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    def _put(self, data: str) -> None:
        try:
            self._queue.put_nowait(data)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug("SSE queue full; dropping message")

    def _put_sentinel(self) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def stream(self) -> AsyncIterator[str]:
        """Yield queued messages until the sink is ended or the client disconnects."""
        try:
            while True:
                item = await self._queue.get()
                if item is None:
                    break
                yield item
        finally:
            self._closed = True
            for callback in self._callbacks:
                try:
                    callback()
                except Exception:
                    logger.exception("SSE close callback failed")
