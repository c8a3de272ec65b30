"""Editor Player: reconstructs editor state at any offset of a Timeline.

The EditorPlayer owns one mutable Frame for the lifetime of a playback
session. Moving forward applies only the events in the gap; moving
backward discards the frame and replays from the initial frame, since
text edits cannot in general be inverted. Both paths run every event
through the same application routine, so they converge on identical
frames for the same offset.

The EditorPlayer is also the live editor track: while the session plays
it applies the remaining events at their due time on the shared clock.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable

from codio.clock import Clock, monotonic_ms
from codio.config import Settings, get_settings
from codio.editor.events import (
    ActiveEditorChangeEvent,
    DocumentChangeEvent,
    Event,
    ExecutionOutputEvent,
    RenameEvent,
    SelectionChangeEvent,
    VisibleRangeChangeEvent,
    event_paths,
    map_event_paths,
)
from codio.editor.frame import CodioFile, Frame, deserialize_frame
from codio.editor.shadow_document import ShadowDocument
from codio.editor.timeline import Timeline
from codio.observability.metrics import track_materialize, track_skipped_event
from codio.storage.workspace import WorkspaceResolver

logger = logging.getLogger(__name__)

UpdateListener = Callable[[Frame, "Event | None"], Any]


class EditorPlayer:
    """Replays a Timeline against its initial frame.

    Example:
        editor = EditorPlayer()
        if not editor.load(workspace_root, timeline):
            editor.destroy()
        frame = await editor.materialize(5000)
        print(frame.texts())
    """

    def __init__(
        self,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the EditorPlayer.

        Args:
            clock: Millisecond clock shared with the other tracks.
            settings: Optional settings override.
        """
        self._clock = clock or monotonic_ms
        self._yield_every = (settings or get_settings()).MATERIALIZE_YIELD_EVERY

        self.timeline: Timeline | None = None
        self.resolver: WorkspaceResolver | None = None
        self.events: list[Event] = []
        self._unresolved: set[int] = set()

        self._initial_frame = Frame()
        self.frame = Frame()
        self.current_offset_ms = 0
        # Number of events already applied to self.frame
        self._cursor = 0

        self._task: asyncio.Task[None] | None = None
        self._update_listeners: list[UpdateListener] = []

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def total_duration_ms(self) -> int:
        return self.timeline.total_duration_ms if self.timeline else 0

    @property
    def initial_frame(self) -> Frame:
        """A copy of the frame the timeline starts from."""
        return self._initial_frame.clone()

    @property
    def is_playing(self) -> bool:
        return self._task is not None and not self._task.done()

    # =========================================================================
    # Loading
    # =========================================================================

    def load(self, workspace_root: Path | str, timeline: Timeline) -> bool:
        """Bind a Timeline's relative document paths to a workspace.

        Args:
            workspace_root: Directory the recording is played on.
            timeline: The timeline to replay.

        Returns:
            True if at least one document could be bound. Callers should
            destroy the player when this returns False.
        """
        resolver = WorkspaceResolver(workspace_root)
        if not resolver.exists():
            logger.error(
                f"Workspace to play on does not exist: {resolver.root}",
                extra={"workspace": str(resolver.root)},
            )
            return False

        initial_frame, bound_files = deserialize_frame(timeline.initial_frame, resolver)

        events: list[Event] = []
        unresolved: set[int] = set()
        bound_targets = 0
        for index, event in enumerate(timeline.events):
            bound = self._bind_event(event, resolver)
            if bound is None:
                unresolved.add(index)
                events.append(event)
                continue
            if event_paths(event):
                bound_targets += 1
            events.append(bound)

        if unresolved:
            logger.warning(
                f"{len(unresolved)} of {len(events)} events reference documents "
                f"outside {resolver.root} and will be skipped",
                extra={"workspace": str(resolver.root), "unresolved": len(unresolved)},
            )

        if bound_files == 0 and bound_targets == 0:
            logger.error(
                f"No document of the timeline could be bound to {resolver.root}",
                extra={"workspace": str(resolver.root)},
            )
            return False

        self.pause()
        self.timeline = timeline
        self.resolver = resolver
        self.events = events
        self._unresolved = unresolved
        self._initial_frame = initial_frame
        self.frame = initial_frame.clone()
        self.current_offset_ms = 0
        self._cursor = 0

        logger.info(
            f"Loaded timeline with {len(events)} events and {bound_files} documents",
            extra={
                "workspace": str(resolver.root),
                "event_count": len(events),
                "document_count": bound_files,
                "total_duration_ms": timeline.total_duration_ms,
            },
        )
        return True

    @staticmethod
    def _bind_event(event: Event, resolver: WorkspaceResolver) -> Event | None:
        bound: dict[str, str] = {}
        for relative in event_paths(event):
            path = resolver.to_absolute(relative)
            if path is None:
                return None
            bound[relative] = str(path)
        return map_event_paths(event, lambda relative: bound[relative])

    def destroy(self) -> None:
        """Stop the live track and drop all held state."""
        self.pause()
        self.timeline = None
        self.resolver = None
        self.events = []
        self._unresolved = set()
        self._initial_frame = Frame()
        self.frame = Frame()
        self.current_offset_ms = 0
        self._cursor = 0
        self._update_listeners.clear()

    # =========================================================================
    # Frame Reconstruction
    # =========================================================================

    async def materialize(self, offset_ms: float) -> Frame:
        """Bring the held frame to the state valid at ``offset_ms``.

        Forward targets apply only the events in the gap. Backward targets
        rebuild from the initial frame. The offset is clamped into
        ``[0, total_duration_ms]``. The live track is stopped first.

        Args:
            offset_ms: Target offset in milliseconds.

        Returns:
            The held frame, now valid at the target offset.
        """
        self.pause()
        target = int(max(0, min(offset_ms, self.total_duration_ms)))

        if target < self.current_offset_ms:
            path = "rebuild"
            self.frame = self._initial_frame.clone()
            self._cursor = 0
        else:
            path = "incremental"

        start_cursor = self._cursor
        with track_materialize(path):
            await self._advance_to(target)
        self.current_offset_ms = target

        logger.debug(
            f"Materialized frame at {target}ms ({path}, {self._cursor - start_cursor} events)",
            extra={"offset_ms": target, "path": path, "cursor": self._cursor},
        )
        self._emit_update(None)
        return self.frame

    async def _advance_to(self, target: int) -> None:
        applied = 0
        while self._cursor < len(self.events) and self.events[self._cursor].time <= target:
            self._apply(self._cursor, self.frame)
            self._cursor += 1
            applied += 1
            if applied % self._yield_every == 0:
                await asyncio.sleep(0)

    def snapshot_at(self, offset_ms: float) -> Frame:
        """Build a fresh frame for ``offset_ms`` without touching the held one."""
        target = max(0, min(offset_ms, self.total_duration_ms))
        frame = self._initial_frame.clone()
        for index, event in enumerate(self.events):
            if event.time > target:
                break
            self._apply(index, frame)
        return frame

    def _apply(self, index: int, frame: Frame) -> None:
        """Apply event ``index`` to ``frame``. Unresolvable events are skipped."""
        event = self.events[index]
        if index in self._unresolved:
            self._skip(index, event, "unresolved")
            return

        match event:
            case DocumentChangeEvent():
                file = frame.get(Path(event.path))
                if file is None:
                    self._skip(index, event, "missing_document")
                    return
                file.document.apply_changes(event.changes)
                file.last_action = index

            case SelectionChangeEvent():
                file = frame.get(Path(event.path))
                if file is None:
                    self._skip(index, event, "missing_document")
                    return
                file.selections = list(event.selections)
                file.last_action = index

            case VisibleRangeChangeEvent():
                file = frame.get(Path(event.path))
                if file is None:
                    self._skip(index, event, "missing_document")
                    return
                file.visible_range = event.visible_range
                file.last_action = index

            case ActiveEditorChangeEvent():
                path = Path(event.path)
                file = frame.get(path)
                if file is None:
                    file = frame.add(
                        CodioFile(path=path, document=ShadowDocument(event.content))
                    )
                file.column = event.view_column
                if event.visible_range is not None:
                    file.visible_range = event.visible_range
                if event.selections:
                    file.selections = list(event.selections)
                file.last_action = index
                frame.active_path = path

            case RenameEvent():
                old_path, new_path = Path(event.old_path), Path(event.new_path)
                file = frame.rename(old_path, new_path)
                if file is None:
                    if event.content is None:
                        self._skip(index, event, "missing_document")
                        return
                    file = frame.add(
                        CodioFile(path=new_path, document=ShadowDocument(event.content))
                    )
                elif event.content is not None:
                    file.document.set_text(event.content)
                file.last_action = index

            case ExecutionOutputEvent():
                frame.output.append(event.output)

    def _skip(self, index: int, event: Event, reason: str) -> None:
        logger.warning(
            f"Skipping {event.type} event {index} at {event.time}ms: {reason}",
            extra={"event_index": index, "event_type": event.type, "reason": reason},
        )
        track_skipped_event(reason)

    # =========================================================================
    # Live Track
    # =========================================================================

    def play(self, offset_ms: float, anchor_ms: float) -> None:
        """Apply the remaining events as the shared clock reaches them.

        The frame must already be materialized at ``offset_ms``; event
        ``e`` is applied once ``clock() - anchor_ms >= e.time - offset_ms``.

        Args:
            offset_ms: Logical offset the session resumed from.
            anchor_ms: Clock reading taken when playback (re)started.
        """
        self.pause()
        self._task = asyncio.create_task(
            self._run(offset_ms, anchor_ms), name="codio-editor-track"
        )

    async def _run(self, offset_ms: float, anchor_ms: float) -> None:
        while self._cursor < len(self.events):
            event = self.events[self._cursor]
            delay_ms = (event.time - offset_ms) - (self._clock() - anchor_ms)
            if delay_ms > 0:
                await asyncio.sleep(delay_ms / 1000)
            self._apply(self._cursor, self.frame)
            self._cursor += 1
            self.current_offset_ms = max(self.current_offset_ms, event.time)
            self._emit_update(event)

    def pause(self) -> None:
        """Stop applying events. The frame keeps its current state."""
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            self._task = None

    # =========================================================================
    # Listeners
    # =========================================================================

    def add_update_listener(self, listener: UpdateListener) -> None:
        """Register a callback receiving ``(frame, event)`` after each change.

        ``event`` is None when the frame was moved by ``materialize``.
        """
        self._update_listeners.append(listener)

    def remove_update_listener(self, listener: UpdateListener) -> None:
        if listener in self._update_listeners:
            self._update_listeners.remove(listener)

    def _emit_update(self, event: Event | None) -> None:
        for listener in self._update_listeners:
            try:
                result = listener(self.frame, event)
                if asyncio.iscoroutine(result):
                    asyncio.create_task(result)
            except Exception as e:
                logger.warning(f"Editor update listener error: {e}")


__all__ = ["EditorPlayer", "UpdateListener"]
