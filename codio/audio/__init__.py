"""
Audio Package

External audio processes for narration playback and capture.
"""

from codio.audio.backend import AudioBackend, AudioError
from codio.audio.ffmpeg import FfmpegAudioBackend
from codio.audio.track import AudioCapture, AudioTrack

__all__ = [
    "AudioBackend",
    "AudioError",
    "FfmpegAudioBackend",
    "AudioTrack",
    "AudioCapture",
]
