"""Frames: snapshots of every open document at one instant.

A Frame holds, for each open document, its shadow document, view column,
current selections and visible range, plus the index of the last event
applied to it. It also carries the active document and the execution
output log, so that two frames compare equal exactly when the editor
would look the same.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import Field

from codio.editor.events import CodioModel, Range, Selection
from codio.editor.shadow_document import ShadowDocument
from codio.storage.workspace import WorkspaceResolver

logger = logging.getLogger(__name__)


# =============================================================================
# Serialized Form
# =============================================================================


class SerializedFile(CodioModel):
    """One document of a persisted initial frame."""

    path: str
    text: str = ""
    view_column: int = Field(default=1, ge=1)
    last_action_count: int = -1


# =============================================================================
# Live Form
# =============================================================================


@dataclass
class CodioFile:
    """One open document inside a frame."""

    path: Path
    document: ShadowDocument
    column: int = 1
    last_action: int = -1
    selections: list[Selection] = field(default_factory=list)
    visible_range: Range | None = None

    def clone(self) -> CodioFile:
        # Selection and Range models are frozen, so a shallow list copy is enough.
        return CodioFile(
            path=self.path,
            document=self.document.copy(),
            column=self.column,
            last_action=self.last_action,
            selections=list(self.selections),
            visible_range=self.visible_range,
        )


@dataclass
class Frame:
    """Editor state at one offset."""

    files: dict[Path, CodioFile] = field(default_factory=dict)
    active_path: Path | None = None
    output: list[str] = field(default_factory=list)

    def get(self, path: Path) -> CodioFile | None:
        return self.files.get(path)

    def add(self, file: CodioFile) -> CodioFile:
        self.files[file.path] = file
        return file

    def rename(self, old_path: Path, new_path: Path) -> CodioFile | None:
        """Re-key a document, preserving insertion order."""
        file = self.files.get(old_path)
        if file is None:
            return None
        file.path = new_path
        if new_path != old_path:
            # The renamed document replaces whatever was held at the target
            self.files.pop(new_path, None)
        self.files = {
            (new_path if key == old_path else key): value
            for key, value in self.files.items()
        }
        if self.active_path == old_path:
            self.active_path = new_path
        return file

    def texts(self) -> dict[str, str]:
        """Map of document path to current text."""
        return {str(path): file.document.text for path, file in self.files.items()}

    def clone(self) -> Frame:
        return Frame(
            files={path: file.clone() for path, file in self.files.items()},
            active_path=self.active_path,
            output=list(self.output),
        )


# =============================================================================
# Conversion
# =============================================================================


def serialize_frame(frame: Frame, resolver: WorkspaceResolver) -> list[SerializedFile]:
    """Convert a live frame to its persisted form.

    Documents outside the workspace cannot be addressed by a relative
    path and are left out.
    """
    serialized: list[SerializedFile] = []
    for file in frame.files.values():
        relative = resolver.to_relative(file.path)
        if relative is None:
            logger.warning(
                f"Dropping document outside workspace from frame: {file.path}",
                extra={"path": str(file.path), "workspace": str(resolver.root)},
            )
            continue
        serialized.append(
            SerializedFile(
                path=relative,
                text=file.document.text,
                view_column=file.column,
                last_action_count=file.last_action,
            )
        )
    return serialized


def deserialize_frame(
    files: list[SerializedFile],
    resolver: WorkspaceResolver,
) -> tuple[Frame, int]:
    """Bind a persisted frame to a workspace.

    Returns:
        The live frame and the number of documents that could be bound.
    """
    frame = Frame()
    for serialized in files:
        path = resolver.to_absolute(serialized.path)
        if path is None:
            logger.warning(
                f"Cannot bind frame document to workspace: {serialized.path!r}",
                extra={"path": serialized.path, "workspace": str(resolver.root)},
            )
            continue
        frame.add(
            CodioFile(
                path=path,
                document=ShadowDocument(serialized.text),
                column=serialized.view_column,
                last_action=serialized.last_action_count,
            )
        )
    return frame, len(frame.files)


__all__ = [
    "SerializedFile",
    "CodioFile",
    "Frame",
    "serialize_frame",
    "deserialize_frame",
]
