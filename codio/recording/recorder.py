"""Recorder: captures live editor events into a Timeline.

Event times are active recording time: wall-clock time spent paused is
banked out, so ``time = accumulated_ms + (now - anchor)``. Narration
audio is captured alongside on the same anchor discipline.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from enum import Enum
from pathlib import Path
from typing import Any, NamedTuple

from codio.audio.backend import AudioError
from codio.audio.track import AudioCapture
from codio.clock import Clock, monotonic_ms
from codio.config import Settings, get_settings
from codio.editor.events import (
    ActiveEditorChangeEvent,
    Event,
    event_paths,
    map_event_paths,
)
from codio.editor.frame import CodioFile, Frame, serialize_frame
from codio.editor.shadow_document import ShadowDocument
from codio.editor.timeline import Timeline
from codio.observability.metrics import track_audio_failure, track_recorded_event
from codio.playback.timer import ProgressTimer, TimerListener
from codio.storage import files
from codio.storage.workspace import WorkspaceResolver

logger = logging.getLogger(__name__)


class RecorderState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PAUSED = "paused"
    FINISHED = "finished"


class RecorderError(Exception):
    """Recorder used out of order."""

    pass


class OpenDocument(NamedTuple):
    """A document open in the editor when recording starts."""

    path: Path | str
    text: str
    view_column: int = 1


class Recorder:
    """Captures one recording session.

    Example:
        recorder = Recorder(workspace_root)
        await recorder.start([OpenDocument(path, text)], active_path=path)
        recorder.on_event(DocumentChangeEvent(path=str(path), changes=[...]))
        await recorder.save(codio_dir, name="intro")
    """

    def __init__(
        self,
        workspace_root: Path | str,
        audio: AudioCapture | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.resolver = WorkspaceResolver(workspace_root)
        self.audio = audio
        self._clock = clock or monotonic_ms

        self.state = RecorderState.IDLE
        self.events: list[Event] = []
        self.timeline: Timeline | None = None
        self._initial_frame = Frame()
        self._anchor_ms = 0.0
        self._accumulated_ms = 0.0
        self._last_time = 0

        self._timer = ProgressTimer(
            None, self.settings.TIMER_TICK_INTERVAL_MS, clock=self._clock
        )
        self.process: asyncio.Future[None] | None = None

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def is_recording(self) -> bool:
        return self.state is RecorderState.RECORDING

    @property
    def elapsed_ms(self) -> int:
        """Active recording time so far."""
        elapsed = self._accumulated_ms
        if self.state is RecorderState.RECORDING:
            elapsed += self._clock() - self._anchor_ms
        return int(elapsed)

    def add_timer_listener(self, listener: TimerListener) -> None:
        """Register a callback receiving ``(elapsed_ms, None)`` while recording."""
        self._timer.add_listener(listener)

    def remove_timer_listener(self, listener: TimerListener) -> None:
        self._timer.remove_listener(listener)

    # =========================================================================
    # Capture
    # =========================================================================

    async def start(
        self,
        documents: list[OpenDocument],
        active_path: Path | str | None = None,
    ) -> None:
        """Snapshot the open documents and start capturing.

        Args:
            documents: Documents open in the editor right now.
            active_path: Focused document, recorded as the first event.
        """
        if self.state is not RecorderState.IDLE:
            raise RecorderError(f"Cannot start a recorder that is {self.state.value}")
        if not self.resolver.exists():
            raise RecorderError(f"Workspace does not exist: {self.resolver.root}")

        frame = Frame()
        for document in documents:
            path = Path(document.path)
            frame.add(
                CodioFile(
                    path=path,
                    document=ShadowDocument(document.text),
                    column=document.view_column,
                )
            )
        self._initial_frame = frame

        # Audio first, so its spawn time is not counted as recorded time
        if self.audio is not None:
            try:
                await self.audio.start()
            except AudioError as e:
                logger.warning(f"Recording without audio: {e}")
                track_audio_failure("record")
                self.audio = None

        self.process = asyncio.get_running_loop().create_future()
        self._anchor_ms = self._clock()
        self._accumulated_ms = 0.0
        self.state = RecorderState.RECORDING
        self._timer.run(0, self._anchor_ms)

        if active_path is not None:
            active = frame.get(Path(active_path))
            self._append(
                ActiveEditorChangeEvent(
                    path=str(active_path),
                    content=active.document.text if active else "",
                    view_column=active.column if active else 1,
                    is_initial=True,
                ),
                0,
            )

        logger.info(
            f"Recording started with {len(frame.files)} open documents",
            extra={"workspace": str(self.resolver.root), "document_count": len(frame.files)},
        )

    def on_event(self, event: Event) -> Event | None:
        """Stamp a live event with the recording time and append it.

        Returns:
            The stored event, or None when the recorder is not recording.
        """
        if self.state is not RecorderState.RECORDING:
            logger.debug(f"Dropping {event.type} event while {self.state.value}")
            return None
        return self._append(event, self.elapsed_ms)

    def _append(self, event: Event, time_ms: int) -> Event:
        # Clock readings never go backwards, but the stored order must not either
        time_ms = max(time_ms, self._last_time)
        stamped = event.model_copy(update={"time": time_ms})
        self.events.append(stamped)
        self._last_time = time_ms
        track_recorded_event(stamped.type)
        return stamped

    async def pause(self) -> None:
        """Bank the active segment and stop accepting events."""
        if self.state is not RecorderState.RECORDING:
            return
        self._accumulated_ms += self._clock() - self._anchor_ms
        self.state = RecorderState.PAUSED
        self._timer.stop()
        if self.audio is not None:
            try:
                await self.audio.pause()
            except AudioError as e:
                logger.warning(f"Failed to pause audio capture: {e}")
                track_audio_failure("pause")
        logger.info(f"Recording paused at {int(self._accumulated_ms)}ms")

    async def resume(self) -> None:
        if self.state is not RecorderState.PAUSED:
            return
        if self.audio is not None:
            try:
                await self.audio.resume()
            except AudioError as e:
                logger.warning(f"Failed to resume audio capture: {e}")
                track_audio_failure("resume")
        self._anchor_ms = self._clock()
        self.state = RecorderState.RECORDING
        self._timer.run(self._accumulated_ms, self._anchor_ms)
        logger.info(f"Recording resumed at {int(self._accumulated_ms)}ms")

    # =========================================================================
    # Completion
    # =========================================================================

    async def finalize(self) -> Timeline:
        """Stop capturing and freeze the recording into a Timeline."""
        if self.state is RecorderState.FINISHED and self.timeline is not None:
            return self.timeline
        if self.state is RecorderState.IDLE:
            raise RecorderError("Cannot finalize a recorder that was never started")

        if self.state is RecorderState.RECORDING:
            self._accumulated_ms += self._clock() - self._anchor_ms
        self.state = RecorderState.FINISHED
        self._timer.stop()
        await self._stop_audio()

        events: list[Event] = []
        dropped = 0
        for event in self.events:
            relative = {path: self.resolver.to_relative(path) for path in event_paths(event)}
            if any(value is None for value in relative.values()):
                dropped += 1
                continue
            events.append(map_event_paths(event, lambda path: relative[path]))
        if dropped:
            logger.warning(
                f"Dropped {dropped} events on documents outside {self.resolver.root}",
                extra={"dropped": dropped, "workspace": str(self.resolver.root)},
            )

        self.timeline = Timeline(
            total_duration_ms=max(int(self._accumulated_ms), self._last_time),
            events=events,
            initial_frame=serialize_frame(self._initial_frame, self.resolver),
        )
        self._resolve_process()
        logger.info(
            f"Recording finished: {len(events)} events over {self.timeline.total_duration_ms}ms",
            extra={
                "event_count": len(events),
                "total_duration_ms": self.timeline.total_duration_ms,
            },
        )
        return self.timeline

    async def save(self, codio_dir: Path | str, name: str | None = None) -> Path:
        """Finalize if needed and write the codio to ``codio_dir``.

        Besides the timeline and metadata, the captured audio is moved in
        and the initial documents are written under ``workspace/`` so the
        codio can be played back on its own.
        """
        timeline = await self.finalize()
        codio_dir = Path(codio_dir)

        await files.save_timeline(codio_dir, timeline, self.settings)
        await files.save_metadata(
            codio_dir,
            files.CodioMetadata(
                name=name or codio_dir.name,
                length=timeline.total_duration_ms,
                version=self.settings.CODIO_FORMAT_VERSION,
            ),
            self.settings,
        )

        workspace = files.workspace_path(codio_dir, self.settings)
        await asyncio.to_thread(self._write_workspace, workspace, timeline)

        if self.audio is not None and self.audio.path.exists():
            target = files.audio_path(codio_dir, self.settings)
            if self.audio.path.resolve() != target.resolve():
                await asyncio.to_thread(shutil.move, str(self.audio.path), str(target))

        logger.info(f"Saved codio to {codio_dir}", extra={"codio_dir": str(codio_dir)})
        return codio_dir

    @staticmethod
    def _write_workspace(workspace: Path, timeline: Timeline) -> None:
        resolver = WorkspaceResolver(workspace)
        workspace.mkdir(parents=True, exist_ok=True)
        for file in timeline.initial_frame:
            path = resolver.to_absolute(file.path)
            if path is None:
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(file.text, encoding="utf-8")

    async def cancel(self) -> None:
        """Stop capturing and discard everything recorded."""
        if self.state is RecorderState.IDLE:
            return
        self._timer.stop()
        await self._stop_audio()
        if self.audio is not None:
            self.audio.path.unlink(missing_ok=True)
        self.events = []
        self.timeline = None
        self.state = RecorderState.FINISHED
        self._resolve_process()
        logger.info("Recording cancelled")

    async def wait_finished(self) -> None:
        if self.process is not None:
            await asyncio.shield(self.process)

    async def _stop_audio(self) -> None:
        if self.audio is None:
            return
        try:
            await self.audio.stop()
        except AudioError as e:
            logger.warning(f"Failed to stop audio capture: {e}")
            track_audio_failure("stop")

    def _resolve_process(self) -> None:
        if self.process is not None and not self.process.done():
            self.process.set_result(None)

    def status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "elapsed_ms": self.elapsed_ms,
            "event_count": len(self.events),
        }


__all__ = ["RecorderState", "RecorderError", "OpenDocument", "Recorder"]
