"""Tests for the compute pool and its delivery channel.

These run the event loop with ``asyncio.run`` and real worker threads so
that blocking sends, backpressure and cross-thread completion behave as
they do under the API.
"""

import asyncio
import threading

import pytest

from imaging.errors import ChannelClosedError
from workers.compute_pool import ComputePool


def test_run_returns_result(pool):
    assert asyncio.run(pool.run(sum, [1, 2, 3])) == 6


def test_run_runs_off_the_event_loop_thread(pool):
    async def scenario():
        return threading.current_thread().name, await pool.run(lambda: threading.current_thread().name)

    loop_thread, worker_thread = asyncio.run(scenario())
    assert loop_thread != worker_thread
    assert worker_thread.startswith("compute")


def test_run_propagates_errors(pool):
    def boom():
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        asyncio.run(pool.run(boom))


def test_pool_needs_a_worker():
    with pytest.raises(ValueError):
        ComputePool(0)


def test_stream_delivers_in_order(pool):
    def produce(channel, count):
        for i in range(count):
            channel.send(i)
        return "done"

    async def scenario():
        channel, completion = pool.stream(produce, 5, maxsize=2)
        received = [item async for item in channel]
        return received, await completion

    assert asyncio.run(scenario()) == ([0, 1, 2, 3, 4], "done")


def test_stream_applies_backpressure(pool):
    sent = []

    def produce(channel):
        for i in range(3):
            channel.send(i)
            sent.append(i)

    async def scenario():
        channel, completion = pool.stream(produce, maxsize=1)
        first = await channel.__anext__()
        await asyncio.sleep(0.3)
        # One item waits in the channel, the third send is blocked.
        blocked_at = list(sent)
        rest = [item async for item in channel]
        await completion
        return first, blocked_at, rest

    first, blocked_at, rest = asyncio.run(scenario())
    assert first == 0
    assert blocked_at == [0, 1]
    assert rest == [1, 2]
    assert sent == [0, 1, 2]


def test_error_after_last_delivery_reaches_completion(pool):
    def produce(channel):
        channel.send("first")
        raise RuntimeError("late failure")

    async def scenario():
        channel, completion = pool.stream(produce, maxsize=4)
        received = [item async for item in channel]
        with pytest.raises(RuntimeError, match="late failure"):
            await completion
        return received

    assert asyncio.run(scenario()) == ["first"]


def test_closing_the_channel_stops_a_blocked_worker(pool):
    def produce(channel):
        for i in range(10):
            channel.send(i)

    async def scenario():
        channel, completion = pool.stream(produce, maxsize=1)
        first = await channel.__anext__()
        channel.close()
        with pytest.raises(ChannelClosedError):
            await completion
        return first, [item async for item in channel]

    first, after_close = asyncio.run(scenario())
    assert first == 0
    assert after_close == []


def test_channel_bound_is_at_least_one(pool):
    async def scenario():
        channel, completion = pool.stream(lambda channel: None, maxsize=0)
        _ = [item async for item in channel]
        await completion
        return channel.maxsize

    assert asyncio.run(scenario()) == 1
