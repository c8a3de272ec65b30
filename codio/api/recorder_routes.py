"""Recorder API Routes for Codio.

A host editor starts a recording with the documents it has open, pushes
every observed change to ``/events`` and finally saves the codio.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Annotated, Any

from fastapi import APIRouter, Body, HTTPException, status
from pydantic import ValidationError

from codio.api.dependencies import (
    RecorderSlot,
    RecorderSlotDep,
    SettingsDep,
    get_audio_backend,
    remove_scratch_dir,
)
from codio.api.models import (
    ErrorResponse,
    RecordedEventResponse,
    RecorderSaveRequest,
    RecorderSaveResponse,
    RecorderStartRequest,
    RecorderStatusResponse,
)
from codio.audio.track import AudioCapture
from codio.editor.events import parse_event
from codio.recording.recorder import OpenDocument, Recorder, RecorderError, RecorderState
from codio.storage.archive import ArchiveError, pack

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/recorder", tags=["recorder"])

ARCHIVE_SUFFIX = ".codio"


def _status(recorder: Recorder) -> RecorderStatusResponse:
    return RecorderStatusResponse(
        state=recorder.state.value,
        elapsed_ms=recorder.elapsed_ms,
        event_count=len(recorder.events),
    )


def _require(slot: RecorderSlot) -> Recorder:
    if slot.recorder is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="No recording in progress",
        )
    return slot.recorder


@router.post(
    "/start",
    response_model=RecorderStatusResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start recording",
    responses={
        400: {"model": ErrorResponse, "description": "Workspace missing"},
        409: {"model": ErrorResponse, "description": "Already recording"},
    },
)
async def start(
    request: RecorderStartRequest,
    slot: RecorderSlotDep,
    settings: SettingsDep,
) -> RecorderStatusResponse:
    async with slot.lock:
        current = slot.recorder
        if current is not None and current.state in (
            RecorderState.RECORDING,
            RecorderState.PAUSED,
        ):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A recording is already in progress",
            )

        scratch: Path | None = None
        audio: AudioCapture | None = None
        backend = get_audio_backend() if request.record_audio else None
        if backend is not None:
            scratch = Path(tempfile.mkdtemp(prefix="codio-audio-"))
            audio = AudioCapture(
                scratch / settings.AUDIO_FILENAME, backend, settings.AUDIO_INPUT_DEVICE
            )

        recorder = Recorder(request.workspace_path, audio=audio, settings=settings)
        try:
            await recorder.start(
                [OpenDocument(d.path, d.text, d.view_column) for d in request.documents],
                active_path=request.active_path,
            )
        except RecorderError as e:
            if scratch is not None:
                remove_scratch_dir(scratch)
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

        slot.recorder = recorder
        slot.scratch.replace(scratch)
        return _status(recorder)


@router.post(
    "/events",
    response_model=RecordedEventResponse,
    summary="Capture an editor event",
    responses={409: {"model": ErrorResponse, "description": "No recording in progress"}},
)
async def capture_event(
    payload: Annotated[dict[str, Any], Body()],
    slot: RecorderSlotDep,
) -> RecordedEventResponse:
    """Stamp and append one event. Events sent while paused are dropped."""
    recorder = _require(slot)
    try:
        event = parse_event(payload)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid event: {e.error_count()} errors",
        ) from e

    stored = recorder.on_event(event)
    return RecordedEventResponse(
        accepted=stored is not None,
        time=stored.time if stored is not None else None,
    )


@router.post("/pause", response_model=RecorderStatusResponse, summary="Pause recording")
async def pause(slot: RecorderSlotDep) -> RecorderStatusResponse:
    recorder = _require(slot)
    await recorder.pause()
    return _status(recorder)


@router.post("/resume", response_model=RecorderStatusResponse, summary="Resume recording")
async def resume(slot: RecorderSlotDep) -> RecorderStatusResponse:
    recorder = _require(slot)
    await recorder.resume()
    return _status(recorder)


@router.post("/cancel", response_model=RecorderStatusResponse, summary="Discard recording")
async def cancel(slot: RecorderSlotDep) -> RecorderStatusResponse:
    async with slot.lock:
        recorder = _require(slot)
        await recorder.cancel()
        slot.release()
    return _status(recorder)


@router.post(
    "/save",
    response_model=RecorderSaveResponse,
    summary="Finish and save the recording",
    responses={
        400: {"model": ErrorResponse, "description": "Codio could not be written"},
        409: {"model": ErrorResponse, "description": "No recording in progress"},
    },
)
async def save(request: RecorderSaveRequest, slot: RecorderSlotDep) -> RecorderSaveResponse:
    """Save to a directory, or to an archive when the path ends in ``.codio``."""
    target = Path(request.codio_path).expanduser()

    async with slot.lock:
        recorder = _require(slot)
        try:
            if target.suffix == ARCHIVE_SUFFIX:
                with tempfile.TemporaryDirectory(prefix="codio-") as staging_root:
                    staging = Path(staging_root) / target.stem
                    await recorder.save(staging, name=request.name or target.stem)
                    await pack(staging, target)
            else:
                await recorder.save(target, name=request.name)
        except RecorderError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
        except (ArchiveError, OSError) as e:
            logger.error(f"Failed to save codio to {target}: {e}")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

        slot.release()

    timeline = recorder.timeline
    return RecorderSaveResponse(
        codio_path=str(target),
        total_duration_ms=timeline.total_duration_ms if timeline else 0,
        event_count=len(timeline.events) if timeline else 0,
    )


@router.get("/status", response_model=RecorderStatusResponse, summary="Recorder status")
async def get_status(slot: RecorderSlotDep) -> RecorderStatusResponse:
    return _status(_require(slot))


__all__ = ["router"]
