"""
Pydantic Models for the Codio transport API.

Request and response bodies use camelCase keys on the wire, matching the
persisted timeline format. snake_case is accepted on input as well.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for API bodies with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Player
# =============================================================================


class LoadRequest(ApiModel):
    """Load a codio directory (or a packed ``.codio`` archive)."""

    codio_path: str = Field(..., min_length=1, description="Codio directory or archive")
    workspace_path: str | None = Field(
        default=None,
        description="Workspace to play on; defaults to the codio's own workspace",
    )


class SkipRequest(ApiModel):
    seconds: float | None = Field(
        default=None,
        gt=0,
        description="Seconds to move; defaults to DEFAULT_SKIP_SECONDS",
    )


class SeekRequest(ApiModel):
    # Out-of-range targets are clamped, not rejected
    offset_ms: float = Field(..., description="Target offset in milliseconds")


class PlayerStatusResponse(ApiModel):
    """Snapshot of the player and the editor frame it holds."""

    state: str
    offset_ms: int
    total_duration_ms: int
    is_playing: bool
    in_session: bool
    active_path: str | None = None
    documents: dict[str, str] = Field(default_factory=dict)
    output: list[str] = Field(default_factory=list)
    subtitle: str | None = None


# =============================================================================
# Recorder
# =============================================================================


class OpenDocumentModel(ApiModel):
    path: str = Field(..., min_length=1, description="Absolute path of the open document")
    text: str = ""
    view_column: int = Field(default=1, ge=1)


class RecorderStartRequest(ApiModel):
    workspace_path: str = Field(..., min_length=1)
    documents: list[OpenDocumentModel] = Field(default_factory=list)
    active_path: str | None = None
    record_audio: bool = Field(default=False, description="Capture narration with ffmpeg")


class RecorderSaveRequest(ApiModel):
    codio_path: str = Field(
        ...,
        min_length=1,
        description="Target directory, or a path ending in .codio to write an archive",
    )
    name: str | None = None


class RecorderStatusResponse(ApiModel):
    state: str
    elapsed_ms: int
    event_count: int


class RecorderSaveResponse(ApiModel):
    codio_path: str
    total_duration_ms: int
    event_count: int


class RecordedEventResponse(ApiModel):
    accepted: bool
    time: int | None = None


# =============================================================================
# System
# =============================================================================


class HealthResponse(ApiModel):
    """Response model for health check endpoint."""

    status: str
    version: str
    timestamp: datetime
    checks: dict[str, dict[str, Any]]


class ErrorResponse(ApiModel):
    """Standard API error response."""

    error: str
    detail: str | None = None
    code: str
    request_id: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


__all__ = [
    "ApiModel",
    "LoadRequest",
    "SkipRequest",
    "SeekRequest",
    "PlayerStatusResponse",
    "OpenDocumentModel",
    "RecorderStartRequest",
    "RecorderSaveRequest",
    "RecorderStatusResponse",
    "RecorderSaveResponse",
    "RecordedEventResponse",
    "HealthResponse",
    "ErrorResponse",
]
