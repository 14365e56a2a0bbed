# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import Any

import pytest

from timers.ticker import PeriodicTicker


@pytest.mark.asyncio
async def test_ticks_until_stopped():
    ticks: list[int] = []
    ticker = PeriodicTicker(interval_s=0.01, callback=lambda: ticks.append(1), name="t")

    ticker.start()
    await asyncio.sleep(0.08)
    ticker.stop()
    count = len(ticks)
    await asyncio.sleep(0.05)

    assert count >= 2
    assert len(ticks) == count
    assert not ticker.running


@pytest.mark.asyncio
async def test_first_tick_waits_one_interval():
    ticks: list[int] = []
    ticker = PeriodicTicker(interval_s=0.5, callback=lambda: ticks.append(1), name="t")

    ticker.start()
    await asyncio.sleep(0.02)
    ticker.stop()

    assert ticks == []


@pytest.mark.asyncio
async def test_start_twice_runs_one_loop_and_stop_is_idempotent():
    ticks: list[int] = []
    ticker = PeriodicTicker(interval_s=0.02, callback=lambda: ticks.append(1), name="t")

    ticker.start()
    ticker.start()
    await asyncio.sleep(0.05)
    ticker.stop()
    ticker.stop()

    assert 1 <= len(ticks) <= 3


@pytest.mark.asyncio
async def test_async_callbacks_are_awaited():
    ticks: list[int] = []

    async def cb() -> None:
        await asyncio.sleep(0)
        ticks.append(1)

    ticker = PeriodicTicker(interval_s=0.01, callback=cb, name="t")
    ticker.start()
    await asyncio.sleep(0.05)
    ticker.stop()

    assert ticks


@pytest.mark.asyncio
async def test_failing_tick_is_logged_and_ticker_keeps_running(events: list[dict[str, Any]]):
    calls: list[int] = []

    def cb() -> None:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("capture glitch")

    ticker = PeriodicTicker(interval_s=0.01, callback=cb, name="sampler")
    ticker.start()
    await asyncio.sleep(0.06)
    ticker.stop()

    assert len(calls) >= 2
    errors = [e for e in events if e["event_type"] == "TICKER_CALLBACK_ERROR"]
    assert errors[0]["ticker"] == "sampler"


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        PeriodicTicker(interval_s=0, callback=lambda: None, name="t")
