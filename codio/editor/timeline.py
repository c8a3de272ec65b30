"""Timeline: the persisted unit of a recording.

A Timeline is the total recorded duration, the ordered event log and the
initial frame the events are replayed against. It is immutable once
produced by the Recorder.
"""

from __future__ import annotations

from pydantic import Field, model_validator

from codio.editor.events import CodioModel, Event
from codio.editor.frame import SerializedFile


# =============================================================================
# Exceptions
# =============================================================================


class TimelineError(Exception):
    """Base exception for timeline operations."""

    pass


class TimelineLoadError(TimelineError):
    """Timeline could not be read or does not match the schema."""

    pass


class TimelineCorruptionError(TimelineError):
    """Timeline events are out of order or lie past the total duration.

    Replay correctness depends on ordering, so this is a hard failure and
    is kept apart from ordinary I/O errors.
    """

    def __init__(
        self,
        index: int,
        previous_time: int,
        time: int,
        total_duration_ms: int | None = None,
    ) -> None:
        self.index = index
        self.previous_time = previous_time
        self.time = time
        self.total_duration_ms = total_duration_ms
        if total_duration_ms is not None:
            message = f"Event {index} at {time}ms lies past the total duration of {total_duration_ms}ms"
        else:
            message = f"Event {index} at {time}ms precedes the previous event at {previous_time}ms"
        super().__init__(message)


# =============================================================================
# Timeline Model
# =============================================================================


class Timeline(CodioModel):
    """Recorded session: ``{totalDurationMs, events, initialFrame}``."""

    total_duration_ms: int = Field(default=0, ge=0)
    events: list[Event] = Field(default_factory=list)
    initial_frame: list[SerializedFile] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_event_order(self) -> Timeline:
        # TimelineCorruptionError is not a ValueError, so pydantic lets it
        # propagate instead of folding it into a ValidationError.
        check_event_order(self.events, self.total_duration_ms)
        return self


def check_event_order(events: list[Event], total_duration_ms: int | None = None) -> None:
    """Raise TimelineCorruptionError unless event times never decrease.

    With ``total_duration_ms`` given, an event past it is corrupt as well:
    replay is clamped to the total and could never reach it.
    """
    previous = 0
    for index, event in enumerate(events):
        if event.time < previous:
            raise TimelineCorruptionError(index, previous, event.time)
        if total_duration_ms is not None and event.time > total_duration_ms:
            raise TimelineCorruptionError(index, previous, event.time, total_duration_ms)
        previous = event.time


__all__ = [
    "TimelineError",
    "TimelineLoadError",
    "TimelineCorruptionError",
    "Timeline",
    "check_event_order",
]
