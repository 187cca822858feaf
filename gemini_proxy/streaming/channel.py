"""
Bounded Event Channel

A producer task pumps the engine stream into a bounded queue; the HTTP side
consumes it. An abort signal stops consumption at the next item.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Generic, Optional, TypeVar

from gemini_proxy.common.errors import RequestAbortedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_END = object()


@dataclass
class _Failure:
    error: BaseException


class EventChannel(Generic[T]):
    """
    Producer/consumer bridge between an async source and its reader.

    Usage:
        async with EventChannel(source, maxsize=64, abort_signal=abort) as channel:
            async for item in channel:
                ...

    Source exceptions are re-raised to the reader after the items produced
    before them. Closing the channel sets the abort signal, cancels the
    producer and closes the source.
    """

    def __init__(
        self,
        source: AsyncIterator[T],
        maxsize: int = 64,
        abort_signal: Optional[asyncio.Event] = None,
    ):
        self._source = source
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.abort_signal = abort_signal if abort_signal is not None else asyncio.Event()
        self._producer: Optional[asyncio.Task] = None
        self._finished = False

    def start(self) -> None:
        if self._producer is None:
            self._producer = asyncio.create_task(self._pump())

    async def _race_abort(self, aw: Awaitable[Any]) -> tuple[asyncio.Future, bool]:
        """Await `aw` unless the abort signal fires first."""
        task = asyncio.ensure_future(aw)
        aborter = asyncio.ensure_future(self.abort_signal.wait())
        try:
            done, _ = await asyncio.wait({task, aborter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (task, aborter):
                if not pending.done():
                    pending.cancel()
        return task, aborter in done

    async def _close_source(self) -> None:
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()

    async def _pump(self) -> None:
        try:
            async for item in self._source:
                _, aborted = await self._race_abort(self._queue.put(item))
                if aborted:
                    logger.debug("Channel aborted, producer stopping")
                    return
        except Exception as e:
            await self._race_abort(self._queue.put(_Failure(e)))
            return
        finally:
            await self._close_source()
        await self._race_abort(self._queue.put(_END))

    def __aiter__(self) -> "EventChannel[T]":
        return self

    async def __anext__(self) -> T:
        if self._finished:
            raise StopAsyncIteration
        if self.abort_signal.is_set():
            raise RequestAbortedError()
        self.start()

        getter, aborted = await self._race_abort(self._queue.get())
        if aborted:
            raise RequestAbortedError()

        item = getter.result()
        if item is _END:
            self._finished = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._finished = True
            raise item.error
        return item

    async def aclose(self) -> None:
        """Stop the producer and release the source."""
        self.abort_signal.set()
        if self._producer is not None and not self._producer.done():
            self._producer.cancel()
        if self._producer is not None:
            await asyncio.gather(self._producer, return_exceptions=True)

        await self._close_source()
        self._finished = True

    async def __aenter__(self) -> "EventChannel[T]":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
