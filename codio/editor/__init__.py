"""Editor state for Codio.

This package holds the recorded event model and the machinery that turns
an initial frame plus an ordered event log back into editor state.

Key Components:
- Event variants: typed, timestamped editor changes
- ShadowDocument: in-memory editable text buffer
- Frame: every open document at one instant
- Timeline: the persisted recording
- EditorPlayer: reconstructs the frame at any offset and replays live

Usage:
    from codio.editor import EditorPlayer, Timeline

    editor = EditorPlayer()
    if editor.load(workspace_root, timeline):
        frame = await editor.materialize(5000)
"""

from __future__ import annotations

from codio.editor.events import (
    ActiveEditorChangeEvent,
    DocumentChangeEvent,
    Event,
    EventType,
    ExecutionOutputEvent,
    Position,
    Range,
    RenameEvent,
    Selection,
    SelectionChangeEvent,
    TextChange,
    VisibleRangeChangeEvent,
    parse_event,
)
from codio.editor.frame import CodioFile, Frame, SerializedFile
from codio.editor.player import EditorPlayer
from codio.editor.shadow_document import ShadowDocument
from codio.editor.timeline import (
    Timeline,
    TimelineCorruptionError,
    TimelineError,
    TimelineLoadError,
)

__all__ = [
    # Events
    "EventType",
    "Event",
    "Position",
    "Range",
    "Selection",
    "TextChange",
    "DocumentChangeEvent",
    "SelectionChangeEvent",
    "VisibleRangeChangeEvent",
    "ActiveEditorChangeEvent",
    "RenameEvent",
    "ExecutionOutputEvent",
    "parse_event",
    # State
    "ShadowDocument",
    "CodioFile",
    "Frame",
    "SerializedFile",
    "Timeline",
    "TimelineError",
    "TimelineLoadError",
    "TimelineCorruptionError",
    "EditorPlayer",
]
