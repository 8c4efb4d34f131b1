"""Bounded compute pool for CPU-bound image work.

Decoding, transforming and encoding run on a fixed set of worker threads
so the asyncio event loop that serves requests and talks to storage is
never blocked. The pool width bounds transform parallelism for the whole
process and is the main knob against memory blow-up from concurrent
decodes.

Two ways to hand work to the pool:

- :meth:`ComputePool.run` offloads a function and awaits its result.
- :meth:`ComputePool.stream` offloads a producer that pushes items into a
  bounded :class:`DeliveryChannel`. The caller iterates the channel while
  the producer is still running and awaits the completion future at the
  end to learn whether the producer failed after its last delivery.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Set, Tuple, TypeVar

from imaging.errors import ChannelClosedError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_END_OF_STREAM = object()


class DeliveryChannel:
    """Bounded, ordered channel from one worker thread to the event loop.

    :meth:`send` is called from the worker thread and blocks while the
    channel is full. The consumer iterates with ``async for`` until the
    worker finished. :meth:`close` abandons the channel from the consumer
    side, after which blocked and later sends raise
    :class:`ChannelClosedError`.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int) -> None:
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, maxsize))
        self._lock = threading.Lock()
        self._closed = False
        self._pending: Set[concurrent.futures.Future] = set()

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, item: Any) -> None:
        if item is _END_OF_STREAM:
            raise ValueError("reserved item")
        self._put(item)

    def _put(self, item: Any) -> None:
        with self._lock:
            if self._closed:
                raise ChannelClosedError("delivery channel closed")
            try:
                future = asyncio.run_coroutine_threadsafe(self._queue.put(item), self._loop)
            except RuntimeError as e:
                # Event loop already gone.
                raise ChannelClosedError(str(e)) from e
            self._pending.add(future)
        try:
            future.result()
        except concurrent.futures.CancelledError as e:
            raise ChannelClosedError("delivery channel closed") from e
        finally:
            with self._lock:
                self._pending.discard(future)

    def finish(self) -> None:
        """Mark the end of the stream; called by the worker when done."""
        try:
            self._put(_END_OF_STREAM)
        except ChannelClosedError:
            LOGGER.debug("channel closed before end of stream")

    def close(self) -> None:
        with self._lock:
            self._closed = True
            pending = list(self._pending)
        for future in pending:
            future.cancel()

    def __aiter__(self) -> "DeliveryChannel":
        return self

    async def __anext__(self) -> Any:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END_OF_STREAM:
            self._closed = True
            raise StopAsyncIteration
        return item


def _retrieve_result(future: asyncio.Future) -> None:
    # Consumers that abandon a stream never await its completion.
    if not future.cancelled() and future.exception() is not None:
        LOGGER.debug("stream worker finished with error: %s", future.exception())


class ComputePool:
    """Fixed-size pool of worker threads for transform work."""

    def __init__(self, max_workers: int) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="compute"
        )

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        """Run ``fn(*args)`` on the pool and return its result."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    def stream(
        self, fn: Callable[..., Any], *args: Any, maxsize: int = 1
    ) -> Tuple[DeliveryChannel, asyncio.Future]:
        """Start ``fn(channel, *args)`` on the pool.

        Must be called from the event loop. Returns the delivery channel
        and a future that resolves once ``fn`` returned, or raises what
        ``fn`` raised. End of stream is delivered on the channel before
        the future resolves, including when ``fn`` fails.
        """
        loop = asyncio.get_running_loop()
        channel = DeliveryChannel(loop, maxsize)

        def produce() -> Any:
            try:
                return fn(channel, *args)
            finally:
                channel.finish()

        completion = loop.run_in_executor(self._executor, produce)
        completion.add_done_callback(_retrieve_result)
        return channel, completion

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
