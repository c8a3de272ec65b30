"""On-disk layout of a codio.

A codio directory holds the timeline, its metadata, the narration audio,
optional subtitles and a ``workspace/`` directory that playback binds to
by default. Blocking file I/O runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

from pydantic import Field, ValidationError

from codio.config import Settings, get_settings
from codio.editor.events import CodioModel
from codio.editor.timeline import Timeline, TimelineCorruptionError, TimelineLoadError

logger = logging.getLogger(__name__)


class CodioMetadata(CodioModel):
    """Contents of ``meta.json``."""

    name: str = ""
    length: int = Field(default=0, ge=0, description="Recorded duration in milliseconds")
    version: str = ""


# =============================================================================
# Paths
# =============================================================================


def timeline_path(codio_dir: Path | str, settings: Settings | None = None) -> Path:
    return Path(codio_dir) / (settings or get_settings()).TIMELINE_FILENAME


def metadata_path(codio_dir: Path | str, settings: Settings | None = None) -> Path:
    return Path(codio_dir) / (settings or get_settings()).METADATA_FILENAME


def audio_path(codio_dir: Path | str, settings: Settings | None = None) -> Path:
    return Path(codio_dir) / (settings or get_settings()).AUDIO_FILENAME


def subtitles_path(codio_dir: Path | str, settings: Settings | None = None) -> Path:
    return Path(codio_dir) / (settings or get_settings()).SUBTITLES_FILENAME


def workspace_path(codio_dir: Path | str, settings: Settings | None = None) -> Path:
    return Path(codio_dir) / (settings or get_settings()).WORKSPACE_DIRNAME


# =============================================================================
# Timeline
# =============================================================================


async def load_timeline(codio_dir: Path | str, settings: Settings | None = None) -> Timeline:
    """Read and validate the timeline of a codio.

    Raises:
        TimelineLoadError: The file is missing, unreadable or off-schema.
        TimelineCorruptionError: Events are out of time order.
    """
    path = timeline_path(codio_dir, settings)
    try:
        raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise TimelineLoadError(f"Cannot read timeline {path}: {e}") from e

    try:
        return Timeline.model_validate_json(raw)
    except TimelineCorruptionError:
        raise
    except ValidationError as e:
        raise TimelineLoadError(
            f"Timeline {path} does not match the schema: {e.error_count()} errors"
        ) from e


async def save_timeline(
    codio_dir: Path | str,
    timeline: Timeline,
    settings: Settings | None = None,
) -> Path:
    """Write a timeline, creating the codio directory when needed."""
    path = timeline_path(codio_dir, settings)
    payload = timeline.model_dump_json(by_alias=True)
    await asyncio.to_thread(_write_text, path, payload)
    logger.info(
        f"Saved timeline to {path}",
        extra={"path": str(path), "event_count": len(timeline.events)},
    )
    return path


# =============================================================================
# Metadata
# =============================================================================


async def load_metadata(
    codio_dir: Path | str,
    settings: Settings | None = None,
) -> CodioMetadata | None:
    """Read ``meta.json``. Returns None when missing or unreadable."""
    path = metadata_path(codio_dir, settings)
    try:
        raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        return CodioMetadata.model_validate(json.loads(raw))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable metadata {path}: {e}")
        return None


async def save_metadata(
    codio_dir: Path | str,
    metadata: CodioMetadata,
    settings: Settings | None = None,
) -> Path:
    path = metadata_path(codio_dir, settings)
    await asyncio.to_thread(_write_text, path, metadata.model_dump_json(by_alias=True))
    return path


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


__all__ = [
    "CodioMetadata",
    "timeline_path",
    "metadata_path",
    "audio_path",
    "subtitles_path",
    "workspace_path",
    "load_timeline",
    "save_timeline",
    "load_metadata",
    "save_metadata",
]
