"""
Progress Timer Tests.

Tests for the periodic progress tick source:
- Ticks are computed from the anchor, not accumulated
- The finish callback fires exactly once per run reaching the total
- No tick is delivered after stop()
"""

from __future__ import annotations

import asyncio

from codio.playback.timer import ProgressTimer

from conftest import FakeClock


async def _ticks(count: int = 3) -> None:
    # Tick interval in these tests is 5ms
    await asyncio.sleep(0.005 * count + 0.01)


class TestProgressTimer:
    """Tests for ProgressTimer."""

    async def test_reports_offset_from_anchor(self, clock: FakeClock) -> None:
        timer = ProgressTimer(10000, tick_interval_ms=5, clock=clock)
        ticks: list[tuple[int, int | None]] = []
        timer.add_listener(lambda current, total: ticks.append((current, total)))

        timer.run(1000, clock())
        await asyncio.sleep(0)
        clock.advance(2500)
        await _ticks()
        timer.stop()

        assert ticks[0] == (1000, 10000)
        assert ticks[-1] == (3500, 10000)

    async def test_finish_fires_once_at_total(self, clock: FakeClock) -> None:
        timer = ProgressTimer(1000, tick_interval_ms=5, clock=clock)
        finished = []
        timer.on_finish(lambda: finished.append(timer.current_ms))

        timer.run(0, clock())
        clock.advance(5000)
        await _ticks()

        assert finished == [1000]
        assert timer.current_ms == 1000
        assert not timer.is_running

        # Running again from the end does not fire a second time
        timer.run(1000, clock())
        await _ticks()
        assert finished == [1000]

    async def test_run_below_total_rearms_finish(self, clock: FakeClock) -> None:
        timer = ProgressTimer(1000, tick_interval_ms=5, clock=clock)
        finished = []
        timer.on_finish(lambda: finished.append(True))

        timer.run(900, clock() - 200)
        await _ticks()
        timer.run(0, clock() - 1500)
        await _ticks()

        assert finished == [True, True]

    async def test_no_ticks_after_stop(self, clock: FakeClock) -> None:
        timer = ProgressTimer(10000, tick_interval_ms=5, clock=clock)
        ticks = []
        timer.add_listener(lambda current, total: ticks.append(current))

        timer.run(0, clock())
        await _ticks()
        timer.stop()
        seen = len(ticks)
        clock.advance(1000)
        await _ticks()

        assert len(ticks) == seen
        assert timer.current_ms == 0

    async def test_listener_stopping_timer_halts_tick(self, clock: FakeClock) -> None:
        """Test that a listener calling stop() prevents later listeners from seeing the tick."""
        timer = ProgressTimer(10000, tick_interval_ms=5, clock=clock)
        later = []
        timer.add_listener(lambda current, total: timer.stop())
        timer.add_listener(lambda current, total: later.append(current))

        timer.run(0, clock())
        await _ticks()

        assert later == []
        assert not timer.is_running

    async def test_unbounded_timer_never_finishes(self, clock: FakeClock) -> None:
        timer = ProgressTimer(None, tick_interval_ms=5, clock=clock)
        finished = []
        timer.on_finish(lambda: finished.append(True))

        timer.run(0, clock())
        clock.advance(10**9)
        await _ticks()
        timer.stop()

        assert finished == []
        assert timer.current_ms == 10**9
