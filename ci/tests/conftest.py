"""
Codio Test Suite - Pytest Fixtures and Configuration.

This module provides pytest fixtures shared by the test suite, including:
- A manual millisecond clock for deterministic timing
- A fake audio backend recording every call
- The reference timeline scenario and a workspace to bind it to
- Async test support configuration (pytest-asyncio auto mode)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pytest

# Ensure test environment variables are loaded first
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("AUDIO_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from codio.audio.backend import AudioError  # noqa: E402
from codio.config import Settings  # noqa: E402
from codio.editor.events import (  # noqa: E402
    DocumentChangeEvent,
    Position,
    Range,
    TextChange,
)
from codio.editor.frame import SerializedFile  # noqa: E402
from codio.editor.timeline import Timeline  # noqa: E402


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (several components together)"
    )
    config.addinivalue_line(
        "markers", "api: mark test as HTTP API test"
    )


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start_ms: float = 1_000_000.0) -> None:
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Audio
# =============================================================================


class FakeProcess:
    """Stand-in for an asyncio subprocess handle."""

    _next_pid = 40000

    def __init__(self) -> None:
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.returncode: int | None = None


class FakeAudioBackend:
    """AudioBackend double recording calls; operations in ``fail_on`` raise AudioError."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.calls: list[tuple[str, Any]] = []

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise AudioError(f"{operation} failed")

    async def play(self, file_path: Path, offset_secs: float) -> tuple[FakeProcess, float]:
        self._check("play")
        self.calls.append(("play", offset_secs))
        return FakeProcess(), 0.0

    async def record(self, file_path: Path, input_device: str) -> tuple[FakeProcess, float]:
        self._check("record")
        self.calls.append(("record", input_device))
        file_path.write_bytes(b"ID3")
        return FakeProcess(), 0.0

    async def pause(self, pid: int) -> None:
        self._check("pause")
        self.calls.append(("pause", pid))

    async def resume(self, pid: int) -> None:
        self._check("resume")
        self.calls.append(("resume", pid))

    async def stop(self, pid: int, process: Any) -> None:
        self._check("stop")
        process.returncode = 0
        self.calls.append(("stop", pid))

    def resolve_dependencies(self) -> bool:
        return True

    def operations(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def audio_backend() -> FakeAudioBackend:
    return FakeAudioBackend()


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Test settings with a fast progress timer."""
    return Settings(
        APP_ENV="test",
        TIMER_TICK_INTERVAL_MS=10,
        MATERIALIZE_YIELD_EVERY=2,
        AUDIO_ENABLED=True,
    )


# =============================================================================
# Timeline Scenario
# =============================================================================


def insert_at_start(time: int, path: str, text: str) -> DocumentChangeEvent:
    """Document change inserting ``text`` at line 0, character 0."""
    origin = Position(line=0, character=0)
    return DocumentChangeEvent(
        time=time,
        path=path,
        changes=[TextChange(range=Range(start=origin, end=origin), text=text)],
    )


@pytest.fixture
def scenario_timeline() -> Timeline:
    """10s timeline: "x" inserted at 2000ms, "y" inserted before it at 7000ms."""
    return Timeline(
        total_duration_ms=10000,
        initial_frame=[SerializedFile(path="main.py", text="")],
        events=[
            insert_at_start(2000, "main.py", "x"),
            insert_at_start(7000, "main.py", "y"),
        ],
    )


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Empty workspace directory to play on."""
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def codio_dir(tmp_path: Path, scenario_timeline: Timeline) -> Path:
    """Codio directory holding the scenario timeline, subtitles and a workspace."""
    directory = tmp_path / "intro"
    (directory / "workspace").mkdir(parents=True)
    (directory / "codio.json").write_text(
        scenario_timeline.model_dump_json(by_alias=True), encoding="utf-8"
    )
    (directory / "meta.json").write_text(
        '{"name": "intro", "length": 10000, "version": "0.2.0"}', encoding="utf-8"
    )
    (directory / "subtitles.srt").write_text(
        "1\n00:00:01,000 --> 00:00:03,000\nHello\n\n"
        "2\n00:00:06,000 --> 00:00:08,000\nWorld\n",
        encoding="utf-8",
    )
    return directory
