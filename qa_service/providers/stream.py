# =============================================================================
# Fragment Hand-Off — Bounded Channels Between Upstream Reader and Handler
# =============================================================================
#
# A streaming provider reads the vendor body on its own asyncio task and
# hands results to the request handler through two one-directional,
# bounded, closable channels:
#
#   upstream reader task ──fragments (cap N)──▶ QueryOrchestrator
#                        ──errors    (cap 1)──▶
#
# HandOff wraps asyncio.Queue with:
#   - send(item, cancel): blocks while the channel is full, gives up as soon
#     as the cancellation token (asyncio.Event) is set
#   - close(): idempotent; the receiver drains what is queued, then sees None
#   - receive(): next item, or None once the channel is closed and drained
#
# FragmentStream bundles both channels with the reader task so callers can
# tear everything down with one aclose().
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from qa_service.providers.chat_types import ChatCompletionStreamResponse
from qa_service.services.exceptions import UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HandOff(Generic[T]):
    """Bounded, closable single-producer/single-consumer channel."""

    def __init__(self, maxsize: int) -> None:
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=maxsize)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        self._closed.set()

    async def send(self, item: T, cancel: asyncio.Event | None = None) -> bool:
        """
        Deliver `item`, waiting while the channel is full.

        Returns False without delivering when the channel is closed or when
        `cancel` is (or becomes) set before there is room.
        """
        if self.closed:
            return False
        if cancel is None:
            await self._queue.put(item)
            return True
        if cancel.is_set():
            return False

        put = asyncio.ensure_future(self._queue.put(item))
        stop = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({put, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (put, stop):
                if not task.done():
                    task.cancel()
        return put.done() and not put.cancelled()

    def send_nowait(self, item: T) -> bool:
        """Deliver `item` if there is room right now; False otherwise."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            return False
        return True

    def try_receive(self) -> T | None:
        """Return a queued item without waiting, or None."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    async def receive(self) -> T | None:
        """
        Wait for the next item.

        Items queued before close() are still delivered; None means the
        channel is closed and fully drained.
        """
        while True:
            item = self.try_receive()
            if item is not None:
                return item
            if self.closed:
                return None

            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self._closed.wait())
            try:
                await asyncio.wait(
                    {getter, closer}, return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                closer.cancel()
                if not getter.done():
                    getter.cancel()
            if getter.done() and not getter.cancelled():
                return getter.result()
            # Closed while waiting: loop once more to drain leftovers


@dataclass
class FragmentStream:
    """
    The two outlets of one streaming upstream call, plus its reader task.

    Consumers receive from `fragments` until it yields None, and watch
    `errors` for at most one UpstreamError.
    """

    fragments: HandOff[ChatCompletionStreamResponse]
    errors: HandOff[UpstreamError] = field(default_factory=lambda: HandOff(1))
    task: asyncio.Task | None = None

    @classmethod
    def open(cls, buffer_size: int) -> FragmentStream:
        return cls(fragments=HandOff(buffer_size))

    def start(self, reader: Coroutine[Any, Any, None]) -> FragmentStream:
        """Run `reader` as the upstream task feeding this stream."""
        self.task = asyncio.create_task(reader)
        return self

    def fail(self, error: UpstreamError) -> None:
        """Report a terminal upstream error (the first one wins)."""
        if not self.errors.send_nowait(error):
            logger.debug("Dropping secondary upstream error: %s", error)

    def close(self) -> None:
        """Close both outlets; idempotent."""
        self.errors.close()
        self.fragments.close()

    async def aclose(self) -> None:
        """Close both outlets and stop the reader task if still running."""
        self.close()
        if self.task is None:
            return
        if not self.task.done():
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        elif not self.task.cancelled() and self.task.exception() is not None:
            logger.error("Stream reader task ended with: %r", self.task.exception())
