"""Editor Event Model.

Typed, timestamped records describing every observable change to editor
state during a recording. Every event carries ``time`` in milliseconds
from the start of the session and the minimum payload needed to reapply
the change during playback.

Document identities are carried as path strings. While recording they are
live (absolute) paths; inside a persisted Timeline they are workspace
relative POSIX paths. ``map_event_paths`` converts between the two.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums
# =============================================================================


class EventType(str, Enum):
    """Discriminator values for editor events."""

    DOCUMENT_CHANGE = "document_change"
    SELECTION_CHANGE = "selection_change"
    VISIBLE_RANGE_CHANGE = "visible_range_change"
    ACTIVE_EDITOR_CHANGE = "active_editor_change"
    RENAME = "rename"
    EXECUTION_OUTPUT = "execution_output"


# =============================================================================
# Geometry
# =============================================================================


class CodioModel(BaseModel):
    """Base model: immutable, camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Position(CodioModel):
    """Zero-based line/character position inside a document."""

    line: int = Field(default=0, ge=0)
    character: int = Field(default=0, ge=0)


class Range(CodioModel):
    """A span between two positions."""

    start: Position
    end: Position


class Selection(CodioModel):
    """A selection; ``active`` is where the cursor sits."""

    anchor: Position
    active: Position


class TextChange(CodioModel):
    """Replace the text covered by ``range`` with ``text``."""

    range: Range
    text: str = ""


# =============================================================================
# Event Variants
# =============================================================================


class BaseEvent(CodioModel):
    """Fields shared by every event."""

    time: int = Field(default=0, ge=0, description="Milliseconds from session start")


class DocumentChangeEvent(BaseEvent):
    """Text replacements applied to one document, in recorded order."""

    type: Literal["document_change"] = "document_change"
    path: str
    changes: list[TextChange] = Field(default_factory=list)


class SelectionChangeEvent(BaseEvent):
    """New selection set of one document."""

    type: Literal["selection_change"] = "selection_change"
    path: str
    selections: list[Selection] = Field(default_factory=list)


class VisibleRangeChangeEvent(BaseEvent):
    """New visible range (viewport) of one document."""

    type: Literal["visible_range_change"] = "visible_range_change"
    path: str
    visible_range: Range


class ActiveEditorChangeEvent(BaseEvent):
    """Focus moved to a document.

    ``content`` is only used to seed the shadow document when the
    document is not already part of the frame.
    """

    type: Literal["active_editor_change"] = "active_editor_change"
    path: str
    content: str = ""
    view_column: int = Field(default=1, ge=1)
    is_initial: bool = False
    visible_range: Range | None = None
    selections: list[Selection] = Field(default_factory=list)


class RenameEvent(BaseEvent):
    """A document moved from ``old_path`` to ``new_path``."""

    type: Literal["rename"] = "rename"
    old_path: str
    new_path: str
    content: str | None = None


class ExecutionOutputEvent(BaseEvent):
    """Output captured from running a command or file."""

    type: Literal["execution_output"] = "execution_output"
    output: str = ""


Event = Annotated[
    Union[
        DocumentChangeEvent,
        SelectionChangeEvent,
        VisibleRangeChangeEvent,
        ActiveEditorChangeEvent,
        RenameEvent,
        ExecutionOutputEvent,
    ],
    Field(discriminator="type"),
]

EVENT_ADAPTER: TypeAdapter[Event] = TypeAdapter(Event)


# =============================================================================
# Helpers
# =============================================================================


def event_paths(event: Event) -> list[str]:
    """Return every document path referenced by an event."""
    if isinstance(event, RenameEvent):
        return [event.old_path, event.new_path]
    if isinstance(event, ExecutionOutputEvent):
        return []
    return [event.path]


def map_event_paths(event: Event, mapper: Callable[[str], str]) -> Event:
    """Return a copy of ``event`` with every document path passed through ``mapper``."""
    if isinstance(event, RenameEvent):
        return event.model_copy(
            update={"old_path": mapper(event.old_path), "new_path": mapper(event.new_path)}
        )
    if isinstance(event, ExecutionOutputEvent):
        return event
    return event.model_copy(update={"path": mapper(event.path)})


def parse_event(data: dict) -> Event:
    """Validate a raw mapping (camelCase or snake_case keys) into an Event."""
    return EVENT_ADAPTER.validate_python(data)


__all__ = [
    "EventType",
    "CodioModel",
    "Position",
    "Range",
    "Selection",
    "TextChange",
    "BaseEvent",
    "DocumentChangeEvent",
    "SelectionChangeEvent",
    "VisibleRangeChangeEvent",
    "ActiveEditorChangeEvent",
    "RenameEvent",
    "ExecutionOutputEvent",
    "Event",
    "EVENT_ADAPTER",
    "event_paths",
    "map_event_paths",
    "parse_event",
]
