"""ffmpeg/ffplay audio backend.

Plays narration with ``ffplay`` and records it with ``ffmpeg``, each as an
asyncio subprocess. Pausing and resuming suspend and continue the process
with SIGSTOP/SIGCONT.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import sys
import time
from pathlib import Path

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from codio.audio.backend import AudioError
from codio.config import Settings, get_settings

logger = logging.getLogger(__name__)


def default_input_format(platform: str = sys.platform) -> str:
    """ffmpeg input format for the capture device on ``platform``."""
    if platform == "darwin":
        return "avfoundation"
    if platform == "win32":
        return "dshow"
    return "pulse"


class FfmpegAudioBackend:
    """AudioBackend implementation on top of the ffmpeg tool suite."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.input_format = self.settings.AUDIO_INPUT_FORMAT or default_input_format()

    def resolve_dependencies(self) -> bool:
        """Check that ffmpeg and ffplay are on PATH."""
        missing = [
            tool
            for tool in (self.settings.FFMPEG_PATH, self.settings.FFPLAY_PATH)
            if shutil.which(tool) is None
        ]
        if missing:
            logger.warning(f"Audio tools not found: {', '.join(missing)}")
            return False
        return True

    async def play(
        self, file_path: Path, offset_secs: float
    ) -> tuple[asyncio.subprocess.Process, float]:
        return await self._spawn(
            self.settings.FFPLAY_PATH,
            "-nodisp",
            "-autoexit",
            "-loglevel",
            "quiet",
            "-ss",
            f"{max(0.0, offset_secs):.3f}",
            str(file_path),
        )

    async def record(
        self, file_path: Path, input_device: str
    ) -> tuple[asyncio.subprocess.Process, float]:
        device = f":{input_device}" if self.input_format == "avfoundation" else input_device
        if self.input_format == "dshow":
            device = f"audio={input_device}"
        return await self._spawn(
            self.settings.FFMPEG_PATH,
            "-hide_banner",
            "-nostats",
            "-loglevel",
            "error",
            "-y",
            "-f",
            self.input_format,
            "-i",
            device,
            str(file_path),
        )

    async def _spawn(self, *argv: str) -> tuple[asyncio.subprocess.Process, float]:
        start = time.perf_counter()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.settings.AUDIO_START_MAX_RETRIES),
                wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
                retry=retry_if_exception_type(OSError),
                reraise=True,
            ):
                with attempt:
                    process = await asyncio.create_subprocess_exec(
                        *argv,
                        stdin=asyncio.subprocess.DEVNULL,
                        stdout=asyncio.subprocess.DEVNULL,
                        stderr=asyncio.subprocess.DEVNULL,
                    )
        except OSError as e:
            raise AudioError(f"Failed to start {argv[0]}: {e}") from e

        delay_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            f"Started {argv[0]} (pid {process.pid}) in {delay_ms:.1f}ms",
            extra={"pid": process.pid, "start_delay_ms": delay_ms},
        )
        return process, delay_ms

    async def pause(self, pid: int) -> None:
        self._signal(pid, "SIGSTOP")

    async def resume(self, pid: int) -> None:
        self._signal(pid, "SIGCONT")

    @staticmethod
    def _signal(pid: int, name: str) -> None:
        signum = getattr(signal, name, None)
        if signum is None:
            raise AudioError(f"{name} is not supported on {sys.platform}")
        try:
            os.kill(pid, signum)
        except ProcessLookupError:
            logger.debug(f"Audio process {pid} already exited")
        except OSError as e:
            raise AudioError(f"Failed to send {name} to {pid}: {e}") from e

    async def stop(self, pid: int, process: asyncio.subprocess.Process) -> None:
        """Ask the process to quit, then kill it if it lingers."""
        if process.returncode is not None:
            return
        try:
            # A suspended process cannot handle SIGTERM
            if hasattr(signal, "SIGCONT"):
                self._signal(pid, "SIGCONT")
            process.terminate()
            await asyncio.wait_for(process.wait(), timeout=self.settings.AUDIO_STOP_TIMEOUT)
        except asyncio.TimeoutError:
            logger.debug(f"Audio process {pid} did not quit in time, killing it")
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()
        except ProcessLookupError:
            return


__all__ = ["FfmpegAudioBackend", "default_input_format"]
