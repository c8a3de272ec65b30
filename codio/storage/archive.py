"""Archive collaborator: zip packaging of a codio directory.

Used only when a session is loaded from or saved to a single file, never
during playback.
"""

from __future__ import annotations

import asyncio
import logging
import zipfile
from pathlib import Path

logger = logging.getLogger(__name__)


class ArchiveError(Exception):
    """Archive could not be written or safely extracted."""

    pass


async def pack(source_dir: Path | str, dest_path: Path | str) -> Path:
    """Zip every file under ``source_dir`` into ``dest_path``."""
    return await asyncio.to_thread(_pack, Path(source_dir), Path(dest_path))


async def unpack(archive_path: Path | str, dest_dir: Path | str) -> Path:
    """Extract ``archive_path`` into ``dest_dir``.

    Raises:
        ArchiveError: The archive is unreadable or a member would land
            outside ``dest_dir``.
    """
    return await asyncio.to_thread(_unpack, Path(archive_path), Path(dest_dir))


def _pack(source_dir: Path, dest_path: Path) -> Path:
    if not source_dir.is_dir():
        raise ArchiveError(f"Not a directory: {source_dir}")
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    source_root = source_dir.resolve()
    dest_resolved = dest_path.resolve()
    count = 0
    try:
        with zipfile.ZipFile(dest_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for path in sorted(source_root.rglob("*")):
                if not path.is_file() or path.resolve() == dest_resolved:
                    continue
                archive.write(path, path.relative_to(source_root).as_posix())
                count += 1
    except OSError as e:
        raise ArchiveError(f"Failed to write archive {dest_path}: {e}") from e
    logger.info(f"Packed {count} files into {dest_path}", extra={"file_count": count})
    return dest_path


def _unpack(archive_path: Path, dest_dir: Path) -> Path:
    dest_dir.mkdir(parents=True, exist_ok=True)
    dest_root = dest_dir.resolve()
    try:
        with zipfile.ZipFile(archive_path) as archive:
            members = archive.infolist()
            for member in members:
                target = (dest_root / member.filename).resolve()
                if target != dest_root and dest_root not in target.parents:
                    raise ArchiveError(f"Archive member escapes destination: {member.filename}")
            archive.extractall(dest_root)
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveError(f"Failed to extract {archive_path}: {e}") from e
    logger.info(
        f"Unpacked {len(members)} entries into {dest_root}",
        extra={"entry_count": len(members)},
    )
    return dest_root


__all__ = ["ArchiveError", "pack", "unpack"]
