"""Player API Routes for Codio.

Transport commands (load, play, pause, resume, rewind, forward, seek,
stop) against the process-wide Player, plus a status snapshot of the
editor frame it holds.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from fastapi import APIRouter, HTTPException, status

from codio.api.dependencies import (
    PlayerDep,
    PlayerScratchDep,
    RecorderSlot,
    RecorderSlotDep,
    remove_scratch_dir,
)
from codio.api.models import (
    ErrorResponse,
    LoadRequest,
    PlayerStatusResponse,
    SeekRequest,
    SkipRequest,
)
from codio.editor.timeline import TimelineCorruptionError
from codio.playback.player import Player
from codio.recording.recorder import RecorderState
from codio.storage.archive import ArchiveError, unpack

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/player", tags=["player"])


def build_status(player: Player) -> PlayerStatusResponse:
    """Project the player and its editor frame into a response."""
    documents: dict[str, str] = {}
    active_path: str | None = None
    output: list[str] = []

    editor = player.editor
    if editor is not None and editor.resolver is not None:
        frame = editor.frame
        for path, file in frame.files.items():
            documents[editor.resolver.to_relative(path) or str(path)] = file.document.text
        if frame.active_path is not None:
            active_path = editor.resolver.to_relative(frame.active_path) or str(frame.active_path)
        output = list(frame.output)

    cue = player.subtitles.current if player.subtitles is not None else None
    return PlayerStatusResponse(
        state=player.state.value,
        offset_ms=player.current_offset_ms(),
        total_duration_ms=player.total_duration_ms,
        is_playing=player.is_playing,
        in_session=player.in_session,
        active_path=active_path,
        documents=documents,
        output=output,
        subtitle=cue.text if cue is not None else None,
    )


def _ensure_not_recording(slot: RecorderSlot) -> None:
    """Playback and recording are mutually exclusive."""
    recorder = slot.recorder
    if recorder is not None and recorder.state in (RecorderState.RECORDING, RecorderState.PAUSED):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot play while a recording is in progress",
        )


@router.post(
    "/load",
    response_model=PlayerStatusResponse,
    summary="Load a codio",
    responses={
        400: {"model": ErrorResponse, "description": "Codio could not be loaded"},
        409: {"model": ErrorResponse, "description": "A recording is in progress"},
        422: {"model": ErrorResponse, "description": "Timeline events are out of order"},
    },
)
async def load(
    request: LoadRequest,
    player: PlayerDep,
    scratch: PlayerScratchDep,
    slot: RecorderSlotDep,
) -> PlayerStatusResponse:
    """Load a codio directory, or unpack and load a ``.codio`` archive.

    An archive is unpacked into a temporary directory that lives as long
    as the loaded session. A failed load keeps the previous session and
    its directory.
    """
    _ensure_not_recording(slot)
    codio_path = Path(request.codio_path).expanduser()
    codio_dir = codio_path
    unpacked: Path | None = None
    if codio_path.is_file():
        unpacked = Path(tempfile.mkdtemp(prefix="codio-"))
        try:
            codio_dir = await unpack(codio_path, unpacked)
        except ArchiveError as e:
            remove_scratch_dir(unpacked)
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    try:
        loaded = await player.load(codio_dir, request.workspace_path)
    except TimelineCorruptionError:
        if unpacked is not None:
            remove_scratch_dir(unpacked)
        raise
    if not loaded:
        if unpacked is not None:
            remove_scratch_dir(unpacked)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Failed to load codio {request.codio_path}",
        )
    scratch.replace(unpacked)
    return build_status(player)


@router.post(
    "/play",
    response_model=PlayerStatusResponse,
    summary="Play",
    responses={409: {"model": ErrorResponse, "description": "A recording is in progress"}},
)
async def play(player: PlayerDep, slot: RecorderSlotDep) -> PlayerStatusResponse:
    _ensure_not_recording(slot)
    await player.play()
    return build_status(player)


@router.post("/pause", response_model=PlayerStatusResponse, summary="Pause")
async def pause(player: PlayerDep) -> PlayerStatusResponse:
    await player.pause()
    return build_status(player)


@router.post(
    "/resume",
    response_model=PlayerStatusResponse,
    summary="Resume",
    responses={409: {"model": ErrorResponse, "description": "A recording is in progress"}},
)
async def resume(player: PlayerDep, slot: RecorderSlotDep) -> PlayerStatusResponse:
    _ensure_not_recording(slot)
    await player.resume()
    return build_status(player)


@router.post("/rewind", response_model=PlayerStatusResponse, summary="Rewind")
async def rewind(player: PlayerDep, request: SkipRequest | None = None) -> PlayerStatusResponse:
    await player.rewind(request.seconds if request is not None else None)
    return build_status(player)


@router.post("/forward", response_model=PlayerStatusResponse, summary="Forward")
async def forward(player: PlayerDep, request: SkipRequest | None = None) -> PlayerStatusResponse:
    await player.forward(request.seconds if request is not None else None)
    return build_status(player)


@router.post("/seek", response_model=PlayerStatusResponse, summary="Seek to an offset")
async def seek(request: SeekRequest, player: PlayerDep) -> PlayerStatusResponse:
    await player.seek_to(request.offset_ms)
    return build_status(player)


@router.post("/stop", response_model=PlayerStatusResponse, summary="Stop and close")
async def stop(player: PlayerDep, scratch: PlayerScratchDep) -> PlayerStatusResponse:
    await player.stop()
    scratch.replace(None)
    return build_status(player)


@router.post(
    "/interaction",
    response_model=PlayerStatusResponse,
    summary="Report a user interaction",
    description="The first interaction after playback starts pauses it",
)
async def interaction(player: PlayerDep) -> PlayerStatusResponse:
    await player.notify_interaction()
    return build_status(player)


@router.get("/status", response_model=PlayerStatusResponse, summary="Player status")
async def get_status(player: PlayerDep) -> PlayerStatusResponse:
    return build_status(player)


__all__ = ["router", "build_status"]
