"""In-memory editable text buffer.

A ShadowDocument mirrors the text of an editor document independently of
what is persisted on disk. Playback mutates shadow documents only; the
workspace files are never touched.
"""

from __future__ import annotations

from codio.editor.events import Position, Range, TextChange


class ShadowDocument:
    """Editable text addressed by zero-based (line, character) positions.

    Positions past the end of a line or past the last line are clamped,
    matching how editors resolve stale positions.
    """

    __slots__ = ("_text", "_line_starts")

    def __init__(self, text: str = "") -> None:
        self._text = text
        self._line_starts = self._compute_line_starts(text)

    @staticmethod
    def _compute_line_starts(text: str) -> list[int]:
        starts = [0]
        index = text.find("\n")
        while index != -1:
            starts.append(index + 1)
            index = text.find("\n", index + 1)
        return starts

    @property
    def text(self) -> str:
        return self._text

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def line_length(self, line: int) -> int:
        """Length of ``line`` excluding its line terminator."""
        start = self._line_starts[line]
        if line + 1 < len(self._line_starts):
            end = self._line_starts[line + 1] - 1
            if end > start and self._text[end - 1] == "\r":
                end -= 1
            return end - start
        return len(self._text) - start

    def offset_at(self, position: Position) -> int:
        """Convert a position to an absolute character offset."""
        line = min(position.line, self.line_count - 1)
        character = min(position.character, self.line_length(line))
        return self._line_starts[line] + character

    def position_at(self, offset: int) -> Position:
        """Convert an absolute character offset to a position."""
        offset = max(0, min(offset, len(self._text)))
        low, high = 0, len(self._line_starts) - 1
        while low < high:
            mid = (low + high + 1) // 2
            if self._line_starts[mid] <= offset:
                low = mid
            else:
                high = mid - 1
        return Position(line=low, character=offset - self._line_starts[low])

    def replace(self, range_: Range, text: str) -> None:
        """Replace the text covered by ``range_`` with ``text``."""
        start = self.offset_at(range_.start)
        end = self.offset_at(range_.end)
        if end < start:
            start, end = end, start
        self._text = self._text[:start] + text + self._text[end:]
        self._line_starts = self._compute_line_starts(self._text)

    def apply_changes(self, changes: list[TextChange]) -> None:
        """Apply replacements one after another, in the order given."""
        for change in changes:
            self.replace(change.range, change.text)

    def set_text(self, text: str) -> None:
        self._text = text
        self._line_starts = self._compute_line_starts(text)

    def copy(self) -> ShadowDocument:
        return ShadowDocument(self._text)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ShadowDocument):
            return NotImplemented
        return self._text == other._text

    def __repr__(self) -> str:
        return f"ShadowDocument(lines={self.line_count}, chars={len(self._text)})"


__all__ = ["ShadowDocument"]
