"""Player: the multi-track playback state machine.

The Player owns one logical clock, ``(relative_active_time_ms, anchor)``,
and keeps the editor, subtitle, audio and progress tracks aligned to it.
While playing, the current offset is recomputed from the anchor on
demand:

    current = relative_active_time_ms + (clock() - anchor)

Every track started by one ``play`` receives the same anchor, so they can
drift apart only by scheduling jitter.

States:
    idle -> loaded -> playing <-> paused -> closed
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable, TypedDict

from codio.audio.backend import AudioBackend, AudioError
from codio.audio.track import AudioTrack
from codio.clock import Clock, monotonic_ms
from codio.config import Settings, get_settings
from codio.editor.player import EditorPlayer, UpdateListener
from codio.editor.timeline import Timeline, TimelineCorruptionError, TimelineLoadError
from codio.observability.metrics import (
    PLAYBACK_SESSIONS_ACTIVE,
    track_audio_failure,
    track_transition,
    track_transport_action,
)
from codio.playback.subtitles import CueListener, SubtitleTrack
from codio.playback.timer import ProgressTimer, TimerListener
from codio.storage import files

logger = logging.getLogger(__name__)


# =============================================================================
# State
# =============================================================================


class PlayerState(str, Enum):
    IDLE = "idle"
    LOADED = "loaded"
    PLAYING = "playing"
    PAUSED = "paused"
    CLOSED = "closed"


_IN_SESSION = frozenset({PlayerState.LOADED, PlayerState.PLAYING, PlayerState.PAUSED})


class PlayerContext(TypedDict):
    """Flags a host UI derives from the player state.

    Attributes:
        is_playing: Tracks are running.
        in_session: A codio is loaded and not yet closed.
    """

    is_playing: bool
    in_session: bool


StateChangeListener = Callable[[PlayerState, PlayerState], Any]


# =============================================================================
# Player
# =============================================================================


class Player:
    """Plays one codio at a time.

    All transitions are serialized by a lock, so transport calls arriving
    while another one is suspended on I/O run after it, never interleaved.

    Example:
        player = Player(audio_backend=FfmpegAudioBackend())
        if await player.load(codio_dir):
            await player.start()
            await player.forward(10)
            await player.wait_closed()
    """

    def __init__(
        self,
        audio_backend: AudioBackend | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the Player.

        Args:
            audio_backend: Audio collaborator. Without one, playback is silent.
            clock: Millisecond clock shared by every track.
            settings: Optional settings override.
        """
        self.settings = settings or get_settings()
        self._clock = clock or monotonic_ms
        self._audio_backend = audio_backend

        self.state = PlayerState.IDLE
        self.timeline: Timeline | None = None
        self.codio_dir: Path | None = None
        self.metadata: files.CodioMetadata | None = None

        self.editor: EditorPlayer | None = None
        self.subtitles: SubtitleTrack | None = None
        self.audio: AudioTrack | None = None
        self.timer: ProgressTimer | None = None

        self.relative_active_time_ms = 0
        self._anchor_ms = 0.0
        self._interaction_armed = False

        self._lock = asyncio.Lock()
        self.process: asyncio.Future[None] | None = None
        self._finish_task: asyncio.Task[None] | None = None

        self._state_listeners: list[StateChangeListener] = []
        self._timer_listeners: list[TimerListener] = []
        self._update_listeners: list[UpdateListener] = []
        self._cue_listeners: list[CueListener] = []

    # =========================================================================
    # Derived State
    # =========================================================================

    @property
    def total_duration_ms(self) -> int:
        return self.timeline.total_duration_ms if self.timeline else 0

    @property
    def is_playing(self) -> bool:
        return self.state is PlayerState.PLAYING

    @property
    def in_session(self) -> bool:
        return self.state in _IN_SESSION

    @property
    def context(self) -> PlayerContext:
        return PlayerContext(is_playing=self.is_playing, in_session=self.in_session)

    def current_offset_ms(self) -> int:
        """Logical offset right now, clamped to the total duration."""
        if self.state is not PlayerState.PLAYING:
            return self.relative_active_time_ms
        elapsed = self._clock() - self._anchor_ms
        return int(min(self.total_duration_ms, self.relative_active_time_ms + elapsed))

    def _clamp(self, offset_ms: float) -> int:
        return int(max(0, min(offset_ms, self.total_duration_ms)))

    # =========================================================================
    # Loading
    # =========================================================================

    async def load(
        self,
        codio_dir: Path | str,
        workspace_root: Path | str | None = None,
    ) -> bool:
        """Load a codio directory.

        Args:
            codio_dir: Directory holding the timeline, audio and subtitles.
            workspace_root: Workspace to play on. Defaults to the codio's
                own ``workspace/`` directory.

        Returns:
            False when the timeline cannot be read or no track can be
            prepared. The player keeps its previous state.

        Raises:
            TimelineCorruptionError: The timeline's events are out of order.
        """
        codio_dir = Path(codio_dir)
        try:
            timeline = await files.load_timeline(codio_dir, self.settings)
        except TimelineCorruptionError as e:
            logger.error(
                f"Corrupt timeline in {codio_dir}: {e}",
                extra={"codio_dir": str(codio_dir), "event_index": e.index},
            )
            raise
        except TimelineLoadError as e:
            logger.error(
                f"Failed to load codio {codio_dir}: {e}",
                extra={"codio_dir": str(codio_dir)},
            )
            return False

        loaded = await self.load_timeline(
            timeline,
            workspace_root or files.workspace_path(codio_dir, self.settings),
            audio_path=files.audio_path(codio_dir, self.settings),
            subtitles_path=files.subtitles_path(codio_dir, self.settings),
        )
        if loaded:
            self.codio_dir = codio_dir
            self.metadata = await files.load_metadata(codio_dir, self.settings)
        return loaded

    async def load_timeline(
        self,
        timeline: Timeline,
        workspace_root: Path | str,
        audio_path: Path | str | None = None,
        subtitles_path: Path | str | None = None,
    ) -> bool:
        """Prepare every track for an in-memory timeline.

        A track that cannot be prepared is torn down and playback goes on
        without it. Loading fails only if no track is left.
        """
        async with self._lock:
            editor: EditorPlayer | None = EditorPlayer(self._clock, self.settings)
            if not editor.load(workspace_root, timeline):
                editor.destroy()
                editor = None

            subtitles: SubtitleTrack | None = None
            if subtitles_path is not None and Path(subtitles_path).exists():
                subtitles = SubtitleTrack(self._clock)
                if not await subtitles.load(subtitles_path):
                    subtitles.destroy()
                    subtitles = None

            audio: AudioTrack | None = None
            if (
                audio_path is not None
                and self._audio_backend is not None
                and self.settings.AUDIO_ENABLED
                and Path(audio_path).exists()
            ):
                audio = AudioTrack(audio_path, self._audio_backend)

            if editor is None and subtitles is None and audio is None:
                logger.error(
                    "Nothing to play: no track of the timeline could be prepared",
                    extra={"workspace": str(workspace_root)},
                )
                return False

            # The previous session is only replaced once the new one is ready
            if self.in_session:
                await self._stop_locked()
            self._teardown()

            self.timeline = timeline
            self.codio_dir = None
            self.metadata = None
            self.editor = editor
            self.subtitles = subtitles
            self.audio = audio
            self.timer = ProgressTimer(
                timeline.total_duration_ms,
                self.settings.TIMER_TICK_INTERVAL_MS,
                clock=self._clock,
            )
            self.timer.add_listener(self._emit_timer)
            self.timer.on_finish(self._on_timer_finish)
            if editor is not None:
                for listener in self._update_listeners:
                    editor.add_update_listener(listener)
            if subtitles is not None:
                for listener in self._cue_listeners:
                    subtitles.add_listener(listener)

            self.relative_active_time_ms = 0
            self._anchor_ms = 0.0
            self._interaction_armed = False
            self.process = asyncio.get_running_loop().create_future()
            self._transition(PlayerState.LOADED)

            logger.info(
                f"Loaded timeline of {timeline.total_duration_ms}ms",
                extra={
                    "total_duration_ms": timeline.total_duration_ms,
                    "editor": editor is not None,
                    "subtitles": subtitles is not None,
                    "audio": audio is not None,
                },
            )
            return True

    def _teardown(self) -> None:
        if self.editor is not None:
            self.editor.destroy()
        if self.subtitles is not None:
            self.subtitles.destroy()
        if self.timer is not None:
            self.timer.stop()
        self.editor = None
        self.subtitles = None
        self.audio = None
        self.timer = None
        self.timeline = None

    # =========================================================================
    # Transport
    # =========================================================================

    async def start(self) -> None:
        """Start a freshly loaded session from its current offset."""
        async with self._lock:
            if self.state is not PlayerState.LOADED:
                logger.debug(f"Ignoring start while {self.state.value}")
                return
            track_transport_action("play")
            await self._play_locked(self.relative_active_time_ms)

    async def play(self, from_ms: float | None = None) -> None:
        """Play from ``from_ms`` (default: the current offset)."""
        async with self._lock:
            if not self.in_session:
                logger.debug(f"Ignoring play while {self.state.value}")
                return
            track_transport_action("play")
            offset = self.current_offset_ms() if from_ms is None else from_ms
            await self._play_locked(offset)

    async def pause(self) -> None:
        """Pause all tracks. Pausing while not playing changes nothing."""
        async with self._lock:
            if self.state is not PlayerState.PLAYING:
                logger.debug(f"Ignoring pause while {self.state.value}")
                return
            track_transport_action("pause")
            await self._pause_locked()

    async def resume(self) -> None:
        async with self._lock:
            if self.state is not PlayerState.PAUSED:
                logger.debug(f"Ignoring resume while {self.state.value}")
                return
            track_transport_action("resume")
            await self._play_locked(self.relative_active_time_ms)

    async def rewind(self, seconds: float | None = None) -> None:
        """Move back ``seconds`` (default ``DEFAULT_SKIP_SECONDS``), floored at 0."""
        await self._skip("rewind", -1, seconds)

    async def forward(self, seconds: float | None = None) -> None:
        """Move ahead ``seconds``, capped at the total duration."""
        await self._skip("forward", 1, seconds)

    async def _skip(self, action: str, direction: int, seconds: float | None) -> None:
        if seconds is None:
            seconds = self.settings.DEFAULT_SKIP_SECONDS
        async with self._lock:
            if not self.in_session:
                logger.debug(f"Ignoring {action} while {self.state.value}")
                return
            track_transport_action(action)
            await self._seek_locked(self.current_offset_ms() + direction * seconds * 1000)

    async def seek_to(self, offset_ms: float) -> None:
        """Jump to ``offset_ms``.

        While playing, all tracks restart from the target. Otherwise the
        editor frame and subtitle move to the target and the tracks stay
        stopped until ``resume``.
        """
        async with self._lock:
            if not self.in_session:
                logger.debug(f"Ignoring seek while {self.state.value}")
                return
            track_transport_action("seek")
            await self._seek_locked(offset_ms)

    async def stop(self) -> None:
        """Close the session. Stopping a closed or idle player is a no-op."""
        async with self._lock:
            if not self.in_session:
                logger.debug(f"Ignoring stop while {self.state.value}")
                return
            track_transport_action("stop")
            await self._stop_locked()

    async def notify_interaction(self) -> bool:
        """Signal a user-originated editor interaction.

        The first interaction after playback (re)starts pauses the session.

        Returns:
            True if the interaction paused playback.
        """
        # Checked and cleared before any suspension point
        if not self._interaction_armed or self.state is not PlayerState.PLAYING:
            return False
        self._interaction_armed = False
        async with self._lock:
            if self.state is not PlayerState.PLAYING:
                return False
            track_transport_action("interaction")
            await self._pause_locked()
            return True

    async def wait_closed(self) -> None:
        """Wait until the loaded session is closed."""
        if self.process is not None:
            await asyncio.shield(self.process)

    # =========================================================================
    # Transitions (lock held)
    # =========================================================================

    async def _play_locked(self, offset_ms: float) -> None:
        target = self._clamp(offset_ms)
        await self._stop_tracks()
        if self.editor is not None:
            await self.editor.materialize(target)

        anchor = self._clock()
        self.relative_active_time_ms = target
        self._anchor_ms = anchor

        # Fixed start order, one shared anchor
        if self.editor is not None:
            self.editor.play(target, anchor)
        if self.subtitles is not None:
            self.subtitles.play(target, anchor)
        if self.audio is not None:
            try:
                await self.audio.play(target + (self._clock() - anchor))
            except AudioError as e:
                logger.warning(f"Continuing without audio: {e}")
                track_audio_failure("play")
        if self.timer is not None:
            self.timer.run(target, anchor)

        self._interaction_armed = True
        self._transition(PlayerState.PLAYING)

    async def _pause_locked(self) -> None:
        self.relative_active_time_ms = self.current_offset_ms()
        self._interaction_armed = False
        await self._stop_tracks()
        self._transition(PlayerState.PAUSED)
        # Catch up on events and cues the live tracks had not reached yet
        if self.subtitles is not None:
            self.subtitles.seek(self.relative_active_time_ms)
        if self.editor is not None:
            await self.editor.materialize(self.relative_active_time_ms)

    async def _seek_locked(self, offset_ms: float) -> None:
        target = self._clamp(offset_ms)
        if self.state is PlayerState.PLAYING:
            await self._play_locked(target)
            return

        self.relative_active_time_ms = target
        if self.editor is not None:
            await self.editor.materialize(target)
        if self.subtitles is not None:
            self.subtitles.seek(target)
        if self.timer is not None:
            self.timer.current_ms = target
        self._emit_timer(target, self.total_duration_ms)

    async def _stop_locked(self) -> None:
        if self.state is PlayerState.PLAYING:
            await self._pause_locked()
        await self._stop_tracks()
        if self.subtitles is not None:
            self.subtitles.stop()
        self._interaction_armed = False
        self._transition(PlayerState.CLOSED)
        if self.process is not None and not self.process.done():
            self.process.set_result(None)

    async def _stop_tracks(self) -> None:
        if self.editor is not None:
            self.editor.pause()
        if self.subtitles is not None:
            self.subtitles.pause()
        if self.timer is not None:
            self.timer.stop()
        if self.audio is not None:
            try:
                await self.audio.stop()
            except AudioError as e:
                logger.warning(f"Failed to stop audio: {e}")
                track_audio_failure("stop")

    def _transition(self, state: PlayerState) -> None:
        previous = self.state
        if previous is state:
            return
        self.state = state

        if previous not in _IN_SESSION and state in _IN_SESSION:
            PLAYBACK_SESSIONS_ACTIVE.inc()
        elif previous in _IN_SESSION and state not in _IN_SESSION:
            PLAYBACK_SESSIONS_ACTIVE.dec()
        track_transition(previous.value, state.value)

        logger.info(
            f"Player {previous.value} -> {state.value} at {self.relative_active_time_ms}ms",
            extra={
                "from_state": previous.value,
                "to_state": state.value,
                "offset_ms": self.relative_active_time_ms,
            },
        )
        for listener in list(self._state_listeners):
            try:
                result = listener(previous, state)
                if asyncio.iscoroutine(result):
                    asyncio.create_task(result)
            except Exception as e:
                logger.warning(f"State change listener error: {e}")

    # =========================================================================
    # Progress
    # =========================================================================

    def _on_timer_finish(self) -> None:
        self._finish_task = asyncio.create_task(self._finish(), name="codio-player-finish")

    async def _finish(self) -> None:
        async with self._lock:
            # A seek may have moved playback away from the end meanwhile
            if self.state is PlayerState.PLAYING and self.current_offset_ms() >= self.total_duration_ms:
                logger.info("Reached end of timeline")
                await self._stop_locked()

    def _emit_timer(self, current_ms: int, total_ms: int | None) -> None:
        for listener in list(self._timer_listeners):
            try:
                result = listener(current_ms, total_ms)
                if asyncio.iscoroutine(result):
                    asyncio.create_task(result)
            except Exception as e:
                logger.warning(f"Timer listener error: {e}")

    # =========================================================================
    # Listeners
    # =========================================================================

    def add_state_change_listener(self, listener: StateChangeListener) -> None:
        """Register a callback receiving ``(previous, current)`` on every transition."""
        self._state_listeners.append(listener)

    def remove_state_change_listener(self, listener: StateChangeListener) -> None:
        if listener in self._state_listeners:
            self._state_listeners.remove(listener)

    def add_timer_listener(self, listener: TimerListener) -> None:
        """Register a callback receiving ``(current_ms, total_ms)`` progress ticks."""
        self._timer_listeners.append(listener)

    def remove_timer_listener(self, listener: TimerListener) -> None:
        if listener in self._timer_listeners:
            self._timer_listeners.remove(listener)

    def add_update_listener(self, listener: UpdateListener) -> None:
        """Register a callback receiving editor ``(frame, event)`` updates."""
        self._update_listeners.append(listener)
        if self.editor is not None:
            self.editor.add_update_listener(listener)

    def add_cue_listener(self, listener: CueListener) -> None:
        """Register a callback receiving the displayed subtitle cue."""
        self._cue_listeners.append(listener)
        if self.subtitles is not None:
            self.subtitles.add_listener(listener)

    def status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "offset_ms": self.current_offset_ms(),
            "total_duration_ms": self.total_duration_ms,
            **self.context,
        }


__all__ = [
    "PlayerState",
    "PlayerContext",
    "StateChangeListener",
    "Player",
]
