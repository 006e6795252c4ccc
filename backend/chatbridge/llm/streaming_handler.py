"""
Cancellable text streams.

WHAT: The handle callers iterate for incremental text
WHY: Cancellation must be a first-class operation on the stream, not just "stop consuming"
HOW: A producer task feeds an asyncio.Queue; cancel() aborts the task, drops undelivered
     increments, flushes any open reasoning span, and ends the stream cleanly
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from .types import ProviderError, ProviderUnknownError
from ..utils.logger import get_logger

logger = get_logger(__name__)

# emit(delta, closer): closer is the text that would close spans left open by delta
Emit = Callable[[str, "str | None"], None]
Producer = Callable[[Emit], Awaitable[None]]


@dataclass
class _Increment:
    text: str
    closer: str | None = None


@dataclass
class _Failure:
    error: ProviderError


_END = object()


class TextStream:
    """
    Async iterator of text increments with explicit cancellation.

    Increments are delivered in production order. A caller-initiated
    `cancel()` ends iteration without an error; provider failures are
    raised from `__anext__` as ProviderError.
    """

    def __init__(self, producer: Producer, *, label: str = "stream"):
        self.label = label
        self._queue: asyncio.Queue = asyncio.Queue()
        self._cancelled = False
        self._closed = False
        self._pending_closer: str | None = None
        self._task = asyncio.ensure_future(self._run(producer))

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._closed

    def _emit(self, text: str, closer: str | None = None) -> None:
        if self._cancelled or not text:
            return
        self._queue.put_nowait(_Increment(text, closer))

    async def _run(self, producer: Producer) -> None:
        try:
            await producer(self._emit)
        except asyncio.CancelledError:
            logger.info(f"{self.label}: producer cancelled")
            return
        except ProviderError as e:
            if not self._cancelled:
                self._queue.put_nowait(_Failure(e))
            return
        except Exception as e:
            logger.error(f"{self.label}: unexpected failure: {e}")
            if not self._cancelled:
                self._queue.put_nowait(_Failure(ProviderUnknownError(str(e))))
            return
        if not self._cancelled:
            self._queue.put_nowait(_END)

    def cancel(self) -> None:
        """
        Cancel the stream.

        Aborts the HTTP transfer, discards increments not yet delivered, and
        flushes the closing marker of a reasoning span the caller saw opened.
        Calling it again, or after the stream finished, is a no-op.
        """
        if self._cancelled or self._closed:
            return
        self._cancelled = True
        self._task.cancel()

        while not self._queue.empty():
            self._queue.get_nowait()
        if self._pending_closer:
            self._queue.put_nowait(_Increment(self._pending_closer))
            self._pending_closer = None
        self._queue.put_nowait(_END)
        logger.info(f"{self.label}: cancelled by caller")

    def __aiter__(self) -> "TextStream":
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration

        item = await self._queue.get()
        if item is _END:
            self._closed = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._closed = True
            raise item.error

        self._pending_closer = item.closer
        return item.text

    async def collect(self) -> str:
        """Drain the stream and return the concatenated text."""
        return "".join([chunk async for chunk in self])

    async def aclose(self) -> None:
        """Stop the stream and wait for the producer to unwind."""
        self.cancel()
        await asyncio.wait([self._task])
        self._closed = True

    async def __aenter__(self) -> "TextStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
