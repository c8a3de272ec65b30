"""
Event Model and Timeline Tests.

Tests for the persisted recording format:
- Discriminated event parsing from camelCase payloads
- Path mapping between live and workspace-relative identities
- Event ordering validation and its distinct corruption error
- Timeline, metadata and archive storage
"""

from __future__ import annotations

import json
import zipfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from codio.editor.events import (
    ActiveEditorChangeEvent,
    DocumentChangeEvent,
    ExecutionOutputEvent,
    RenameEvent,
    event_paths,
    map_event_paths,
    parse_event,
)
from codio.editor.timeline import Timeline, TimelineCorruptionError, TimelineLoadError
from codio.storage import files
from codio.storage.archive import ArchiveError, pack, unpack
from codio.storage.workspace import WorkspaceResolver

from conftest import insert_at_start


# =============================================================================
# Events
# =============================================================================


class TestEventParsing:
    """Tests for parsing raw event payloads."""

    def test_parse_camel_case_document_change(self) -> None:
        """Test that wire payloads select the variant from ``type``."""
        event = parse_event(
            {
                "type": "document_change",
                "time": 1500,
                "path": "src/app.py",
                "changes": [
                    {
                        "range": {
                            "start": {"line": 0, "character": 0},
                            "end": {"line": 0, "character": 0},
                        },
                        "text": "import os\n",
                    }
                ],
            }
        )
        assert isinstance(event, DocumentChangeEvent)
        assert event.changes[0].text == "import os\n"

    def test_parse_active_editor_change_aliases(self) -> None:
        event = parse_event(
            {"type": "active_editor_change", "path": "a.py", "viewColumn": 2, "isInitial": True}
        )
        assert isinstance(event, ActiveEditorChangeEvent)
        assert event.view_column == 2
        assert event.is_initial is True

    def test_unknown_type_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_event({"type": "teleport", "time": 0})

    def test_negative_time_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_event({"type": "execution_output", "time": -1, "output": "x"})

    def test_events_are_immutable(self) -> None:
        event = ExecutionOutputEvent(time=1, output="ok")
        with pytest.raises(ValidationError):
            event.time = 5


class TestEventPaths:
    """Tests for document path helpers."""

    def test_rename_references_both_paths(self) -> None:
        event = RenameEvent(old_path="a.py", new_path="b.py")
        assert event_paths(event) == ["a.py", "b.py"]

    def test_execution_output_has_no_paths(self) -> None:
        assert event_paths(ExecutionOutputEvent(output="done")) == []

    def test_map_event_paths_returns_copy(self) -> None:
        event = RenameEvent(time=3, old_path="a.py", new_path="b.py")
        mapped = map_event_paths(event, lambda path: f"/ws/{path}")
        assert mapped.old_path == "/ws/a.py"
        assert mapped.new_path == "/ws/b.py"
        assert mapped.time == 3
        assert event.old_path == "a.py"


# =============================================================================
# Timeline
# =============================================================================


class TestTimelineValidation:
    """Tests for event ordering validation."""

    def test_equal_times_are_allowed(self) -> None:
        timeline = Timeline(
            total_duration_ms=100,
            events=[insert_at_start(50, "a.py", "x"), insert_at_start(50, "a.py", "y")],
        )
        assert len(timeline.events) == 2

    def test_out_of_order_events_raise_corruption(self) -> None:
        """Test that decreasing times raise TimelineCorruptionError, not ValidationError."""
        with pytest.raises(TimelineCorruptionError) as exc_info:
            Timeline(
                total_duration_ms=100,
                events=[insert_at_start(60, "a.py", "x"), insert_at_start(10, "a.py", "y")],
            )
        assert exc_info.value.index == 1
        assert exc_info.value.previous_time == 60
        assert not isinstance(exc_info.value, ValueError)

    def test_event_past_total_duration_raises_corruption(self) -> None:
        with pytest.raises(TimelineCorruptionError) as exc_info:
            Timeline(
                total_duration_ms=100,
                events=[insert_at_start(50, "a.py", "x"), insert_at_start(150, "a.py", "y")],
            )
        assert exc_info.value.index == 1
        assert exc_info.value.total_duration_ms == 100
        assert "past the total duration of 100ms" in str(exc_info.value)

    def test_event_at_total_duration_is_allowed(self) -> None:
        timeline = Timeline(total_duration_ms=100, events=[insert_at_start(100, "a.py", "x")])
        assert timeline.events[0].time == 100

    def test_round_trips_through_camel_case_json(self, scenario_timeline: Timeline) -> None:
        payload = json.loads(scenario_timeline.model_dump_json(by_alias=True))
        assert payload["totalDurationMs"] == 10000
        assert payload["initialFrame"][0]["viewColumn"] == 1
        assert payload["initialFrame"][0]["lastActionCount"] == -1
        assert Timeline.model_validate(payload) == scenario_timeline


# =============================================================================
# Storage
# =============================================================================


class TestTimelineStorage:
    """Tests for reading and writing codio files."""

    async def test_save_then_load(self, tmp_path: Path, scenario_timeline: Timeline) -> None:
        await files.save_timeline(tmp_path / "codio", scenario_timeline)
        loaded = await files.load_timeline(tmp_path / "codio")
        assert loaded == scenario_timeline

    async def test_missing_timeline_is_load_error(self, tmp_path: Path) -> None:
        with pytest.raises(TimelineLoadError):
            await files.load_timeline(tmp_path)

    async def test_schema_violation_is_load_error(self, tmp_path: Path) -> None:
        (tmp_path / "codio.json").write_text('{"totalDurationMs": "soon"}', encoding="utf-8")
        with pytest.raises(TimelineLoadError):
            await files.load_timeline(tmp_path)

    async def test_out_of_order_file_raises_corruption(self, tmp_path: Path) -> None:
        """Test that corruption is reported distinctly from load errors."""
        events = [
            insert_at_start(500, "a.py", "x").model_dump(by_alias=True),
            insert_at_start(100, "a.py", "y").model_dump(by_alias=True),
        ]
        (tmp_path / "codio.json").write_text(
            json.dumps({"totalDurationMs": 1000, "events": events, "initialFrame": []}),
            encoding="utf-8",
        )
        with pytest.raises(TimelineCorruptionError):
            await files.load_timeline(tmp_path)

    async def test_metadata_round_trip(self, tmp_path: Path) -> None:
        metadata = files.CodioMetadata(name="intro", length=1234, version="0.2.0")
        await files.save_metadata(tmp_path, metadata)
        assert await files.load_metadata(tmp_path) == metadata

    async def test_missing_metadata_is_none(self, tmp_path: Path) -> None:
        assert await files.load_metadata(tmp_path) is None


class TestWorkspaceResolver:
    """Tests for binding stored paths to a workspace."""

    def test_relative_path_binds_inside_root(self, tmp_path: Path) -> None:
        resolver = WorkspaceResolver(tmp_path)
        assert resolver.to_absolute("src/a.py") == resolver.root / "src" / "a.py"

    @pytest.mark.parametrize("stored", ["", "/etc/passwd", "../outside.py", "a/../../b.py"])
    def test_unbindable_paths(self, tmp_path: Path, stored: str) -> None:
        assert WorkspaceResolver(tmp_path).to_absolute(stored) is None

    def test_to_relative_rejects_outside_paths(self, tmp_path: Path) -> None:
        resolver = WorkspaceResolver(tmp_path / "ws")
        assert resolver.to_relative(tmp_path / "ws" / "pkg" / "m.py") == "pkg/m.py"
        assert resolver.to_relative(tmp_path / "elsewhere.py") is None


class TestArchive:
    """Tests for codio archive packaging."""

    async def test_pack_and_unpack(self, tmp_path: Path) -> None:
        source = tmp_path / "src"
        (source / "workspace").mkdir(parents=True)
        (source / "codio.json").write_text("{}", encoding="utf-8")
        (source / "workspace" / "main.py").write_text("print()", encoding="utf-8")

        archive = await pack(source, tmp_path / "out.codio")
        target = await unpack(archive, tmp_path / "dest")

        assert (target / "codio.json").read_text(encoding="utf-8") == "{}"
        assert (target / "workspace" / "main.py").read_text(encoding="utf-8") == "print()"

    async def test_unpack_rejects_escaping_members(self, tmp_path: Path) -> None:
        archive = tmp_path / "evil.codio"
        with zipfile.ZipFile(archive, "w") as handle:
            handle.writestr("../escaped.txt", "nope")

        with pytest.raises(ArchiveError):
            await unpack(archive, tmp_path / "dest")
        assert not (tmp_path / "escaped.txt").exists()

    async def test_pack_requires_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ArchiveError):
            await pack(tmp_path / "missing", tmp_path / "out.codio")
