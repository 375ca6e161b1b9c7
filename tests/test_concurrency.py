"""Tests for asyncio helpers."""

import asyncio
import logging

import pytest

from lumen.concurrency import gather_limited, pending_background_tasks, race_with_timeout, spawn

# -- race_with_timeout -------------------------------------------------------


async def test_race_returns_result_when_fast():
    async def fast():
        return "done"

    assert await race_with_timeout(fast(), 1.0, "default") == "done"


async def test_race_returns_default_without_cancelling():
    finished = asyncio.Event()

    async def slow():
        await asyncio.sleep(0.1)
        finished.set()
        return "late"

    result = await race_with_timeout(slow(), 0.01, "default")
    assert result == "default"
    assert not finished.is_set()

    await asyncio.wait_for(finished.wait(), timeout=1.0)
    assert finished.is_set()


async def test_race_propagates_early_exception():
    async def broken():
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError, match="nope"):
        await race_with_timeout(broken(), 1.0, None)


# -- gather_limited ----------------------------------------------------------


async def test_gather_limited_preserves_order():
    async def double(n: int) -> int:
        await asyncio.sleep(0.01 * (5 - n))
        return n * 2

    assert await gather_limited([1, 2, 3, 4], double) == [2, 4, 6, 8]


async def test_gather_limited_caps_concurrency():
    in_flight = 0
    peak = 0

    async def work(n: int) -> int:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return n

    await gather_limited(range(10), work, limit=3)
    assert peak == 3


async def test_gather_limited_empty():
    async def work(n):
        return n

    assert await gather_limited([], work) == []


# -- spawn -------------------------------------------------------------------


async def test_spawn_tracks_until_done():
    gate = asyncio.Event()

    async def wait_for_gate():
        await gate.wait()

    before = pending_background_tasks()
    task = spawn(wait_for_gate(), name="gated")
    assert pending_background_tasks() == before + 1
    gate.set()
    await task
    assert pending_background_tasks() == before


async def test_spawn_logs_failures(caplog):
    async def broken():
        raise RuntimeError("background boom")

    with caplog.at_level(logging.ERROR, logger="lumen.concurrency"):
        task = spawn(broken(), name="broken-job")
        await asyncio.wait({task})
        await asyncio.sleep(0)

    assert "broken-job" in caplog.text
