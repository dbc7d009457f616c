from __future__ import annotations

import asyncio

import pytest

from mathsolver.streaming.heartbeat import Heartbeat


@pytest.mark.asyncio
async def test_ticks_while_work_is_pending() -> None:
    async def work() -> str:
        await asyncio.sleep(0.25)
        return "done"

    async with Heartbeat(work(), 0.05) as heartbeat:
        beats = [beat async for beat in heartbeat.ticks()]
        assert heartbeat.done
        assert heartbeat.result() == "done"

    assert beats
    assert beats == list(range(1, len(beats) + 1))


@pytest.mark.asyncio
async def test_fast_work_produces_no_ticks() -> None:
    async def work() -> int:
        return 7

    async with Heartbeat(work(), 1.0) as heartbeat:
        beats = [beat async for beat in heartbeat.ticks()]
        assert heartbeat.result() == 7

    assert beats == []


@pytest.mark.asyncio
async def test_leaving_early_cancels_work() -> None:
    cancelled = asyncio.Event()

    async def work() -> None:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    async with Heartbeat(work(), 0.01) as heartbeat:
        async for beat in heartbeat.ticks():
            if beat >= 2:
                break

    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_exception_in_block_still_cancels_work() -> None:
    cancelled = asyncio.Event()

    async def work() -> None:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    with pytest.raises(RuntimeError):
        async with Heartbeat(work(), 0.01):
            await asyncio.sleep(0.02)
            raise RuntimeError("client went away")

    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_work_failure_surfaces_through_result() -> None:
    async def work() -> None:
        raise ValueError("upstream exploded")

    async with Heartbeat(work(), 0.05) as heartbeat:
        async for _ in heartbeat.ticks():
            pass
        with pytest.raises(ValueError, match="upstream exploded"):
            heartbeat.result()


def test_interval_must_be_positive() -> None:
    async def work() -> None:
        return None

    coro = work()
    with pytest.raises(ValueError):
        Heartbeat(coro, 0)
    coro.close()
