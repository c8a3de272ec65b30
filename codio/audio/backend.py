"""Audio collaborator interface.

The core never reaches into the audio process. It only asks a backend to
start, pause, resume and stop one, through the protocol below.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, runtime_checkable


class AudioError(Exception):
    """Base exception for audio process failures."""

    pass


@runtime_checkable
class AudioBackend(Protocol):
    """Spawns and controls external audio processes.

    ``play`` and ``record`` return the process handle together with the
    milliseconds it took for the process to start.
    """

    async def play(self, file_path: Path, offset_secs: float) -> tuple[Any, float]:
        ...

    async def record(self, file_path: Path, input_device: str) -> tuple[Any, float]:
        ...

    async def pause(self, pid: int) -> None:
        ...

    async def resume(self, pid: int) -> None:
        ...

    async def stop(self, pid: int, process: Any) -> None:
        ...

    def resolve_dependencies(self) -> bool:
        ...


__all__ = ["AudioError", "AudioBackend"]
