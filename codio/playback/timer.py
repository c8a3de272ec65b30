"""Progress Timer.

A periodic tick source reporting ``(current_ms, total_ms)`` to listeners
and firing a finish callback when the total is reached. The current
offset is always recomputed from the run's anchor on the shared clock,
never accumulated tick by tick, so ticks cannot drift from the other
tracks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from codio.clock import Clock, monotonic_ms

logger = logging.getLogger(__name__)

TimerListener = Callable[[int, "int | None"], Any]
FinishCallback = Callable[[], Any]


class ProgressTimer:
    """Ticks from a start offset until ``total_ms``.

    A ``total_ms`` of None makes the timer unbounded, which is how the
    recorder reports elapsed recording time.
    """

    def __init__(
        self,
        total_ms: int | None,
        tick_interval_ms: int = 200,
        clock: Clock | None = None,
    ) -> None:
        self.total_ms = total_ms
        self.tick_interval_ms = tick_interval_ms
        self.current_ms = 0
        self._clock = clock or monotonic_ms
        self._task: asyncio.Task[None] | None = None
        self._listeners: list[TimerListener] = []
        self._finish_callbacks: list[FinishCallback] = []
        self._finished = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_listener(self, listener: TimerListener) -> None:
        """Register a callback receiving ``(current_ms, total_ms)`` on every tick."""
        self._listeners.append(listener)

    def remove_listener(self, listener: TimerListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def on_finish(self, callback: FinishCallback) -> None:
        """Register a callback fired once when the total is reached."""
        self._finish_callbacks.append(callback)

    def run(self, from_ms: float, anchor_ms: float | None = None) -> None:
        """(Re)start ticking from ``from_ms``.

        Args:
            from_ms: Offset to count from.
            anchor_ms: Clock reading that corresponds to ``from_ms``.
                Defaults to now.
        """
        self.stop()
        anchor = self._clock() if anchor_ms is None else anchor_ms
        self.current_ms = int(from_ms)
        if self.total_ms is None or from_ms < self.total_ms:
            self._finished = False
        self._task = asyncio.create_task(
            self._tick_loop(from_ms, anchor), name="codio-progress-timer"
        )

    def stop(self) -> None:
        """Stop ticking. ``current_ms`` keeps its last value."""
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            self._task = None

    async def _tick_loop(self, from_ms: float, anchor_ms: float) -> None:
        while True:
            current = from_ms + (self._clock() - anchor_ms)
            if self.total_ms is not None and current >= self.total_ms:
                self.current_ms = self.total_ms
                self._emit_tick()
                self._task = None
                self._finish()
                return
            self.current_ms = int(current)
            self._emit_tick()
            await asyncio.sleep(self.tick_interval_ms / 1000)

    def _emit_tick(self) -> None:
        for listener in list(self._listeners):
            # A listener may have stopped the timer mid-tick
            if asyncio.current_task() is not self._task:
                return
            try:
                result = listener(self.current_ms, self.total_ms)
                if asyncio.iscoroutine(result):
                    asyncio.create_task(result)
            except Exception as e:
                logger.warning(f"Timer listener error: {e}")

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        logger.debug(f"Timer reached total of {self.total_ms}ms")
        for callback in list(self._finish_callbacks):
            try:
                result = callback()
                if asyncio.iscoroutine(result):
                    asyncio.create_task(result)
            except Exception as e:
                logger.warning(f"Timer finish callback error: {e}")


__all__ = ["ProgressTimer", "TimerListener", "FinishCallback"]
