"""
Recording Package

Captures live editor events and narration into a Timeline.
"""

from codio.recording.recorder import OpenDocument, Recorder, RecorderError, RecorderState

__all__ = ["Recorder", "RecorderState", "RecorderError", "OpenDocument"]
