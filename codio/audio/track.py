"""Audio playback and capture tracks.

Each track owns at most one external process handle at a time and talks
to it only through an AudioBackend.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from codio.audio.backend import AudioBackend, AudioError

logger = logging.getLogger(__name__)


class AudioTrack:
    """Narration playback for a loaded recording."""

    def __init__(self, path: Path | str, backend: AudioBackend) -> None:
        self.path = Path(path)
        self.backend = backend
        self.process: Any | None = None
        self.start_delay_ms = 0.0

    @property
    def is_playing(self) -> bool:
        return self.process is not None

    async def play(self, offset_ms: float) -> None:
        """Start (or restart) the narration at ``offset_ms``."""
        await self.stop()
        try:
            self.process, self.start_delay_ms = await self.backend.play(
                self.path, max(0.0, offset_ms) / 1000
            )
        except AudioError:
            raise
        except Exception as e:
            raise AudioError(f"Failed to play {self.path}: {e}") from e
        logger.debug(
            f"Audio playing from {offset_ms:.0f}ms",
            extra={"offset_ms": offset_ms, "start_delay_ms": self.start_delay_ms},
        )

    async def pause(self) -> None:
        """Stop the narration. Playback resumes through a new ``play``."""
        await self.stop()

    async def stop(self) -> None:
        if self.process is None:
            return
        process, self.process = self.process, None
        try:
            await self.backend.stop(process.pid, process)
        except AudioError:
            raise
        except Exception as e:
            raise AudioError(f"Failed to stop audio process {process.pid}: {e}") from e


class AudioCapture:
    """Narration capture while recording.

    The capture process is suspended rather than stopped on pause so the
    output file stays a single continuous stream.
    """

    def __init__(self, path: Path | str, backend: AudioBackend, input_device: str) -> None:
        self.path = Path(path)
        self.backend = backend
        self.input_device = input_device
        self.process: Any | None = None
        self.start_delay_ms = 0.0

    @property
    def is_recording(self) -> bool:
        return self.process is not None

    async def start(self) -> None:
        if self.process is not None:
            raise AudioError("Audio capture already started")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.process, self.start_delay_ms = await self.backend.record(
                self.path, self.input_device
            )
        except AudioError:
            raise
        except Exception as e:
            raise AudioError(f"Failed to record to {self.path}: {e}") from e
        logger.info(
            f"Recording audio to {self.path}",
            extra={"device": self.input_device, "start_delay_ms": self.start_delay_ms},
        )

    async def pause(self) -> None:
        if self.process is not None:
            await self.backend.pause(self.process.pid)

    async def resume(self) -> None:
        if self.process is not None:
            await self.backend.resume(self.process.pid)

    async def stop(self) -> None:
        if self.process is None:
            return
        process, self.process = self.process, None
        await self.backend.stop(process.pid, process)


__all__ = ["AudioTrack", "AudioCapture"]
