"""
Player State Machine Tests.

Tests for the multi-track player:
- State transitions idle -> loaded -> playing <-> paused -> closed
- The anchor clock invariant while playing
- Idempotent pause and re-entrant stop
- Rewind/forward/seek clamping and the reference scenarios
- The one-shot interaction watcher
- Best-effort audio
- Reaching the total duration closes the session
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from codio.editor.timeline import Timeline
from codio.playback.player import Player, PlayerState

from conftest import FakeAudioBackend, FakeClock


def _main_text(player: Player) -> str:
    editor = player.editor
    return editor.frame.get(editor.resolver.to_absolute("main.py")).document.text


@pytest.fixture
async def player(clock: FakeClock, settings, audio_backend: FakeAudioBackend) -> Player:
    instance = Player(audio_backend=audio_backend, clock=clock, settings=settings)
    yield instance
    await instance.stop()


@pytest.fixture
async def loaded(player: Player, workspace: Path, scenario_timeline: Timeline) -> Player:
    assert await player.load_timeline(scenario_timeline, workspace)
    return player


# =============================================================================
# Loading
# =============================================================================


class TestLoading:
    """Tests for loading codios into the player."""

    async def test_load_codio_directory(self, player: Player, codio_dir: Path) -> None:
        assert await player.load(codio_dir)
        assert player.state is PlayerState.LOADED
        assert player.total_duration_ms == 10000
        assert player.subtitles is not None
        assert player.audio is None
        assert player.metadata.name == "intro"
        assert player.context == {"is_playing": False, "in_session": True}

    async def test_load_with_audio_file(self, player: Player, codio_dir: Path) -> None:
        (codio_dir / "audio.mp3").write_bytes(b"ID3")
        assert await player.load(codio_dir)
        assert player.audio is not None

    async def test_failed_load_stays_idle(self, player: Player, tmp_path: Path) -> None:
        assert await player.load(tmp_path / "missing") is False
        assert player.state is PlayerState.IDLE
        assert player.process is None

    async def test_corrupt_timeline_raises(self, player: Player, tmp_path: Path) -> None:
        from codio.editor.timeline import TimelineCorruptionError

        (tmp_path / "codio.json").write_text(
            '{"totalDurationMs": 100, "initialFrame": [], "events": ['
            '{"type": "execution_output", "time": 50, "output": "a"},'
            '{"type": "execution_output", "time": 10, "output": "b"}]}',
            encoding="utf-8",
        )
        with pytest.raises(TimelineCorruptionError):
            await player.load(tmp_path)
        assert player.state is PlayerState.IDLE

    async def test_unbindable_workspace_without_other_tracks_fails(
        self, player: Player, tmp_path: Path, scenario_timeline: Timeline
    ) -> None:
        assert await player.load_timeline(scenario_timeline, tmp_path / "missing") is False
        assert player.state is PlayerState.IDLE

    async def test_editor_torn_down_but_subtitles_play(
        self, player: Player, codio_dir: Path, tmp_path: Path
    ) -> None:
        """Test that a workspace binding failure still plays the remaining tracks."""
        assert await player.load(codio_dir, tmp_path / "missing")
        assert player.editor is None
        assert player.subtitles is not None

    async def test_transport_in_idle_is_noop(self, player: Player) -> None:
        await player.pause()
        await player.resume()
        await player.forward(5)
        await player.seek_to(100)
        await player.stop()
        assert player.state is PlayerState.IDLE
        assert player.current_offset_ms() == 0


# =============================================================================
# Transport
# =============================================================================


class TestTransport:
    """Tests for play/pause/resume and the anchor clock."""

    async def test_start_plays_from_zero(self, loaded: Player, audio_backend) -> None:
        await loaded.start()
        assert loaded.state is PlayerState.PLAYING
        assert loaded.context == {"is_playing": True, "in_session": True}

    async def test_clock_invariant_while_playing(self, loaded: Player, clock: FakeClock) -> None:
        """Test that current - relative is non-negative and non-decreasing while playing."""
        await loaded.start()
        samples = []
        for step in (0, 100, 250, 0, 1000):
            clock.advance(step)
            samples.append(loaded.current_offset_ms() - loaded.relative_active_time_ms)
        assert all(sample >= 0 for sample in samples)
        assert samples == sorted(samples)
        assert samples[-1] == 1350

    async def test_pause_materializes_current_offset(
        self, loaded: Player, clock: FakeClock
    ) -> None:
        await loaded.start()
        clock.advance(5000)
        await loaded.pause()

        assert loaded.state is PlayerState.PAUSED
        assert loaded.relative_active_time_ms == 5000
        assert _main_text(loaded) == "x"

    async def test_pause_is_idempotent(self, loaded: Player, clock: FakeClock) -> None:
        await loaded.start()
        clock.advance(3000)
        await loaded.pause()
        first = (loaded.relative_active_time_ms, loaded.state, _main_text(loaded))

        clock.advance(4000)
        await loaded.pause()
        assert (loaded.relative_active_time_ms, loaded.state, _main_text(loaded)) == first

    async def test_paused_offset_does_not_advance(self, loaded: Player, clock: FakeClock) -> None:
        await loaded.start()
        clock.advance(1000)
        await loaded.pause()
        clock.advance(60000)
        assert loaded.current_offset_ms() == 1000

    async def test_resume_continues_from_paused_offset(
        self, loaded: Player, clock: FakeClock
    ) -> None:
        await loaded.start()
        clock.advance(1000)
        await loaded.pause()
        clock.advance(9999)
        await loaded.resume()
        clock.advance(500)
        assert loaded.state is PlayerState.PLAYING
        assert loaded.current_offset_ms() == 1500

    async def test_state_listener_sees_transitions(self, loaded: Player, clock: FakeClock) -> None:
        transitions = []
        loaded.add_state_change_listener(lambda prev, cur: transitions.append((prev, cur)))
        await loaded.start()
        await loaded.pause()
        await loaded.stop()
        assert transitions == [
            (PlayerState.LOADED, PlayerState.PLAYING),
            (PlayerState.PLAYING, PlayerState.PAUSED),
            (PlayerState.PAUSED, PlayerState.CLOSED),
        ]


# =============================================================================
# Seeking
# =============================================================================


class TestSeeking:
    """Tests for rewind, forward and seek clamping."""

    async def test_forward_past_end_clamps(self, loaded: Player, clock: FakeClock) -> None:
        """Test forward(10) from 1000 while paused: target 11000 clamps to 10000, text "yx"."""
        await loaded.start()
        clock.advance(1000)
        await loaded.pause()

        await loaded.forward(10)

        assert loaded.state is PlayerState.PAUSED
        assert loaded.relative_active_time_ms == 10000
        assert _main_text(loaded) == "yx"

    async def test_rewind_past_start_restores_initial_frame(
        self, loaded: Player, clock: FakeClock
    ) -> None:
        """Test rewind(3) from 2000: target -1000 clamps to 0 and the frame equals the initial one."""
        await loaded.seek_to(2000)
        assert _main_text(loaded) == "x"

        await loaded.rewind(3)

        assert loaded.relative_active_time_ms == 0
        assert loaded.editor.frame == loaded.editor.initial_frame

    @pytest.mark.parametrize(
        "start,seconds,expected",
        [(5000, 2, 3000), (1500, 2, 0), (0, 0.5, 0)],
    )
    async def test_rewind_clamps_at_zero(
        self, loaded: Player, start: int, seconds: float, expected: int
    ) -> None:
        await loaded.seek_to(start)
        await loaded.rewind(seconds)
        assert loaded.relative_active_time_ms == expected

    @pytest.mark.parametrize(
        "start,seconds,expected",
        [(1000, 2, 3000), (9500, 1, 10000), (10000, 5, 10000)],
    )
    async def test_forward_clamps_at_total(
        self, loaded: Player, start: int, seconds: float, expected: int
    ) -> None:
        await loaded.seek_to(start)
        await loaded.forward(seconds)
        assert loaded.relative_active_time_ms == expected

    async def test_default_skip_uses_settings(self, loaded: Player, settings) -> None:
        await loaded.forward()
        assert loaded.relative_active_time_ms == int(settings.DEFAULT_SKIP_SECONDS * 1000)

    async def test_seek_while_playing_restarts_tracks(
        self, loaded: Player, clock: FakeClock, audio_backend: FakeAudioBackend
    ) -> None:
        await loaded.start()
        clock.advance(1000)
        await loaded.seek_to(8000)

        assert loaded.state is PlayerState.PLAYING
        assert loaded.relative_active_time_ms == 8000
        assert loaded.current_offset_ms() == 8000
        assert _main_text(loaded) == "yx"

    async def test_seek_while_paused_stays_paused(
        self, loaded: Player, clock: FakeClock
    ) -> None:
        await loaded.start()
        await loaded.pause()
        await loaded.seek_to(7500)
        assert loaded.state is PlayerState.PAUSED
        assert _main_text(loaded) == "yx"
        assert not loaded.editor.is_playing

    async def test_rewind_while_playing_reconciles_offset(
        self, loaded: Player, clock: FakeClock
    ) -> None:
        await loaded.start()
        clock.advance(8000)
        await loaded.rewind(5)
        assert loaded.relative_active_time_ms == 3000
        assert loaded.state is PlayerState.PLAYING
        assert _main_text(loaded) == "x"

    async def test_seek_in_loaded_then_start(self, loaded: Player) -> None:
        await loaded.seek_to(7000)
        await loaded.start()
        assert loaded.relative_active_time_ms == 7000
        assert loaded.state is PlayerState.PLAYING


# =============================================================================
# Interaction Watcher
# =============================================================================


class TestInteraction:
    """Tests for the pause-on-next-interaction watcher."""

    async def test_first_interaction_pauses(self, loaded: Player, clock: FakeClock) -> None:
        await loaded.start()
        clock.advance(2500)
        assert await loaded.notify_interaction() is True
        assert loaded.state is PlayerState.PAUSED
        assert loaded.relative_active_time_ms == 2500

    async def test_interaction_when_paused_is_ignored(self, loaded: Player) -> None:
        await loaded.start()
        await loaded.pause()
        assert await loaded.notify_interaction() is False
        assert loaded.state is PlayerState.PAUSED

    async def test_watcher_rearms_on_resume(self, loaded: Player) -> None:
        await loaded.start()
        assert await loaded.notify_interaction() is True
        assert await loaded.notify_interaction() is False
        await loaded.resume()
        assert await loaded.notify_interaction() is True


# =============================================================================
# Audio
# =============================================================================


class TestAudio:
    """Tests for the best-effort audio track."""

    async def test_audio_follows_transport(
        self, player: Player, codio_dir: Path, clock: FakeClock, audio_backend: FakeAudioBackend
    ) -> None:
        (codio_dir / "audio.mp3").write_bytes(b"ID3")
        await player.load(codio_dir)
        await player.start()
        clock.advance(4000)
        await player.pause()
        await player.resume()

        assert audio_backend.operations() == ["play", "stop", "play"]
        assert audio_backend.calls[0] == ("play", 0.0)
        assert audio_backend.calls[2] == ("play", 4.0)

    async def test_audio_failure_keeps_editor_playing(
        self, clock: FakeClock, settings, codio_dir: Path
    ) -> None:
        backend = FakeAudioBackend(fail_on={"play", "stop"})
        player = Player(audio_backend=backend, clock=clock, settings=settings)
        (codio_dir / "audio.mp3").write_bytes(b"ID3")
        assert await player.load(codio_dir)

        await player.start()
        assert player.state is PlayerState.PLAYING
        clock.advance(7000)
        await player.pause()
        assert _main_text(player) == "yx"
        await player.stop()
        assert player.state is PlayerState.CLOSED


# =============================================================================
# Completion
# =============================================================================


class TestCompletion:
    """Tests for closing a session."""

    async def test_stop_resolves_completion_once(self, loaded: Player) -> None:
        await loaded.start()
        await loaded.stop()
        await asyncio.wait_for(loaded.wait_closed(), timeout=1)
        assert loaded.state is PlayerState.CLOSED
        assert loaded.context == {"is_playing": False, "in_session": False}

        # Re-entrant stop is a no-op
        await loaded.stop()
        assert loaded.state is PlayerState.CLOSED

    async def test_transport_after_close_is_noop(self, loaded: Player) -> None:
        await loaded.stop()
        await loaded.play()
        await loaded.resume()
        assert loaded.state is PlayerState.CLOSED

    async def test_reaching_total_duration_closes(
        self, loaded: Player, clock: FakeClock
    ) -> None:
        ticks = []
        loaded.add_timer_listener(lambda current, total: ticks.append(current))
        await loaded.start()
        clock.advance(12000)

        await asyncio.wait_for(loaded.wait_closed(), timeout=1)

        assert loaded.state is PlayerState.CLOSED
        assert loaded.relative_active_time_ms == 10000
        assert ticks[-1] == 10000
        assert _main_text(loaded) == "yx"

    async def test_loading_again_replaces_session(
        self, loaded: Player, workspace: Path, scenario_timeline: Timeline
    ) -> None:
        await loaded.start()
        first = loaded.process
        assert await loaded.load_timeline(scenario_timeline, workspace)
        assert first.done()
        assert loaded.state is PlayerState.LOADED
        assert loaded.relative_active_time_ms == 0
