"""Subtitle track.

Parses SRT subtitles and, while the session plays, tells listeners which
cue is on screen. Cue boundaries are scheduled against the same anchor
as every other track.
"""

from __future__ import annotations

import asyncio
import bisect
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from codio.clock import Clock, monotonic_ms

logger = logging.getLogger(__name__)

_TIMING_RE = re.compile(
    r"(\d+):(\d{2}):(\d{2})[,.](\d{1,3})\s*-->\s*(\d+):(\d{2}):(\d{2})[,.](\d{1,3})"
)


@dataclass(frozen=True)
class Cue:
    """One subtitle shown from ``start_ms`` (inclusive) to ``end_ms`` (exclusive)."""

    index: int
    start_ms: int
    end_ms: int
    text: str


CueListener = Callable[["Cue | None"], Any]


def _to_ms(hours: str, minutes: str, seconds: str, millis: str) -> int:
    return (
        int(hours) * 3_600_000
        + int(minutes) * 60_000
        + int(seconds) * 1000
        + int(millis.ljust(3, "0"))
    )


def parse_srt(content: str) -> list[Cue]:
    """Parse SRT text into cues sorted by start time.

    Malformed blocks are skipped.
    """
    cues: list[Cue] = []
    blocks = re.split(r"\r?\n\s*\r?\n", content.lstrip("\ufeff").strip())
    for block in blocks:
        lines = [line.rstrip("\r") for line in block.splitlines() if line.strip()]
        if not lines:
            continue
        timing_at = 1 if len(lines) > 1 and lines[0].strip().isdigit() else 0
        match = _TIMING_RE.search(lines[timing_at])
        if match is None:
            logger.warning(f"Skipping malformed subtitle block: {lines[0]!r}")
            continue
        groups = match.groups()
        start_ms = _to_ms(*groups[:4])
        end_ms = _to_ms(*groups[4:])
        if end_ms < start_ms:
            logger.warning(f"Skipping subtitle block ending before it starts: {lines[0]!r}")
            continue
        cues.append(
            Cue(
                index=len(cues) + 1,
                start_ms=start_ms,
                end_ms=end_ms,
                text="\n".join(lines[timing_at + 1:]),
            )
        )
    cues.sort(key=lambda cue: cue.start_ms)
    return cues


class SubtitleTrack:
    """Emits the active cue to listeners as playback crosses cue boundaries."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or monotonic_ms
        self.cues: list[Cue] = []
        self._starts: list[int] = []
        self.current: Cue | None = None
        self._task: asyncio.Task[None] | None = None
        self._listeners: list[CueListener] = []

    async def load(self, path: Path | str) -> bool:
        """Load cues from an SRT file.

        Returns:
            False when the file is missing, unreadable or has no cues.
        """
        path = Path(path)
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            logger.info(f"No subtitles at {path}")
            return False
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read subtitles {path}: {e}")
            return False

        self.cues = parse_srt(content)
        self._starts = [cue.start_ms for cue in self.cues]
        logger.debug(f"Loaded {len(self.cues)} subtitle cues from {path}")
        return bool(self.cues)

    def cue_at(self, offset_ms: float) -> Cue | None:
        """Return the cue covering ``offset_ms``, if any."""
        position = bisect.bisect_right(self._starts, offset_ms) - 1
        # Cues may overlap; walk back to the latest one still showing
        while position >= 0:
            cue = self.cues[position]
            if cue.start_ms <= offset_ms < cue.end_ms:
                return cue
            position -= 1
        return None

    def add_listener(self, listener: CueListener) -> None:
        """Register a callback receiving the displayed cue (None when cleared)."""
        self._listeners.append(listener)

    def remove_listener(self, listener: CueListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def play(self, offset_ms: float, anchor_ms: float) -> None:
        """Show cues from ``offset_ms`` onwards, anchored at ``anchor_ms``."""
        self.pause()
        self._show(self.cue_at(offset_ms))
        self._task = asyncio.create_task(
            self._run(offset_ms, anchor_ms), name="codio-subtitle-track"
        )

    async def _run(self, offset_ms: float, anchor_ms: float) -> None:
        boundaries = sorted(
            {cue.start_ms for cue in self.cues} | {cue.end_ms for cue in self.cues}
        )
        for boundary in boundaries:
            if boundary <= offset_ms:
                continue
            delay_ms = (boundary - offset_ms) - (self._clock() - anchor_ms)
            if delay_ms > 0:
                await asyncio.sleep(delay_ms / 1000)
            self._show(self.cue_at(boundary))

    def pause(self) -> None:
        """Stop following the clock; the displayed cue stays."""
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            self._task = None

    def seek(self, offset_ms: float) -> None:
        """Show the cue at ``offset_ms`` without following the clock."""
        self.pause()
        self._show(self.cue_at(offset_ms))

    def stop(self) -> None:
        """Stop and clear the displayed cue."""
        self.pause()
        self._show(None)

    def destroy(self) -> None:
        self.stop()
        self.cues = []
        self._starts = []
        self._listeners.clear()

    def _show(self, cue: Cue | None) -> None:
        if cue == self.current:
            return
        self.current = cue
        for listener in list(self._listeners):
            try:
                result = listener(cue)
                if asyncio.iscoroutine(result):
                    asyncio.create_task(result)
            except Exception as e:
                logger.warning(f"Subtitle listener error: {e}")


__all__ = ["Cue", "CueListener", "parse_srt", "SubtitleTrack"]
