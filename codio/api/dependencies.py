"""FastAPI Dependency Injection for the Codio API.

One Player and at most one Recorder live per process. Both are module
level singletons handed to routes through dependencies, so tests can swap
them with ``app.dependency_overrides``.

Archives are unpacked, and narration is captured, into temporary
directories. Each session owns its directory through a ScratchDir and
removes it when the session is replaced or closed.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated

from fastapi import Depends

from codio.audio.backend import AudioBackend
from codio.audio.ffmpeg import FfmpegAudioBackend
from codio.config import Settings, get_settings
from codio.playback.player import Player
from codio.recording.recorder import Recorder

logger = logging.getLogger(__name__)


# =============================================================================
# Settings
# =============================================================================

SettingsDep = Annotated[Settings, Depends(get_settings)]


# =============================================================================
# Audio
# =============================================================================

_audio_backend: AudioBackend | None = None
_audio_resolved = False


def get_audio_backend() -> AudioBackend | None:
    """Return the ffmpeg backend, or None when audio is disabled or unavailable."""
    global _audio_backend, _audio_resolved

    if _audio_resolved:
        return _audio_backend

    settings = get_settings()
    _audio_resolved = True
    if not settings.AUDIO_ENABLED:
        logger.info("Audio disabled by configuration")
        return None

    backend = FfmpegAudioBackend(settings)
    if backend.resolve_dependencies():
        _audio_backend = backend
    else:
        logger.warning("Audio tools missing, playback and recording will be silent")
    return _audio_backend


# =============================================================================
# Scratch Directories
# =============================================================================


@dataclass
class ScratchDir:
    """Temporary directory owned by a session."""

    path: Path | None = None

    def replace(self, path: Path | None) -> None:
        """Take ownership of ``path`` and remove the directory held before."""
        previous, self.path = self.path, path
        if previous is not None and previous != path:
            remove_scratch_dir(previous)


def remove_scratch_dir(path: Path) -> None:
    shutil.rmtree(path, ignore_errors=True)
    logger.debug(f"Removed scratch directory {path}", extra={"path": str(path)})


# =============================================================================
# Player
# =============================================================================

_player: Player | None = None
_player_scratch = ScratchDir()


def get_player() -> Player:
    """Get or create the process-wide Player."""
    global _player

    if _player is None:
        _player = Player(audio_backend=get_audio_backend())
        logger.info("Player created")
    return _player


def get_player_scratch() -> ScratchDir:
    """Directory the currently loaded archive was unpacked into."""
    return _player_scratch


PlayerDep = Annotated[Player, Depends(get_player)]
PlayerScratchDep = Annotated[ScratchDir, Depends(get_player_scratch)]


# =============================================================================
# Recorder
# =============================================================================


@dataclass
class RecorderSlot:
    """Holds the recorder of the current recording session, if any.

    ``lock`` serializes claiming the slot, so two concurrent starts cannot
    both pass the in-progress check. ``scratch`` owns the directory the
    narration is captured into.
    """

    recorder: Recorder | None = None
    scratch: ScratchDir = field(default_factory=ScratchDir)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def release(self) -> None:
        """Forget the recorder and remove its capture directory."""
        self.recorder = None
        self.scratch.replace(None)


_recorder_slot = RecorderSlot()


def get_recorder_slot() -> RecorderSlot:
    return _recorder_slot


RecorderSlotDep = Annotated[RecorderSlot, Depends(get_recorder_slot)]


async def close_sessions() -> None:
    """Close the player and abandon an unsaved recording."""
    if _player is not None:
        await _player.stop()
    _player_scratch.replace(None)
    if _recorder_slot.recorder is not None:
        await _recorder_slot.recorder.cancel()
    _recorder_slot.release()


__all__ = [
    "SettingsDep",
    "get_audio_backend",
    "ScratchDir",
    "remove_scratch_dir",
    "get_player",
    "get_player_scratch",
    "PlayerDep",
    "PlayerScratchDep",
    "RecorderSlot",
    "get_recorder_slot",
    "RecorderSlotDep",
    "close_sessions",
]
