"""
Storage Package

Workspace path resolution, the on-disk codio layout and archive packaging.
"""

from codio.storage.archive import ArchiveError, pack, unpack
from codio.storage.workspace import WorkspaceResolver

__all__ = ["WorkspaceResolver", "ArchiveError", "pack", "unpack"]
