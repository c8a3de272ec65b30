"""Playback for Codio.

Key Components:
- Player: state machine keeping every track on one logical clock
- ProgressTimer: periodic progress ticks bounded by the total duration
- SubtitleTrack: SRT cues shown in step with playback
"""

from __future__ import annotations

from codio.playback.player import Player, PlayerContext, PlayerState
from codio.playback.subtitles import Cue, SubtitleTrack, parse_srt
from codio.playback.timer import ProgressTimer

__all__ = [
    "Player",
    "PlayerState",
    "PlayerContext",
    "ProgressTimer",
    "Cue",
    "SubtitleTrack",
    "parse_srt",
]
