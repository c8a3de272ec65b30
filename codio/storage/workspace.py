"""Workspace path resolution.

Converts between the workspace-relative POSIX paths stored in a Timeline
and the live absolute paths used as document identities at record and
playback time.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)


class WorkspaceResolver:
    """Maps document paths in and out of one workspace root."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser().resolve()

    def exists(self) -> bool:
        return self.root.is_dir()

    def to_relative(self, path: Path | str) -> str | None:
        """Return the POSIX path of ``path`` relative to the root.

        Returns None when the path lies outside the workspace.
        """
        absolute = Path(path).expanduser()
        if not absolute.is_absolute():
            absolute = self.root / absolute
        try:
            relative = absolute.resolve().relative_to(self.root)
        except ValueError:
            return None
        if not relative.parts:
            return None
        return relative.as_posix()

    def to_absolute(self, relative: str) -> Path | None:
        """Bind a stored relative path to this workspace.

        Returns None for empty or absolute paths and for paths that would
        escape the root through ``..`` segments.
        """
        if not relative:
            return None
        pure = PurePosixPath(relative)
        if pure.is_absolute() or ".." in pure.parts:
            return None
        return self.root.joinpath(*pure.parts)

    def __repr__(self) -> str:
        return f"WorkspaceResolver(root={str(self.root)!r})"


__all__ = ["WorkspaceResolver"]
