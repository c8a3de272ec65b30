"""
Codio: record a coding session as a timeline and play it back.

Subpackages:
- editor: event model, shadow documents, frames and the editor player
- playback: progress timer, subtitles and the multi-track player
- recording: the session recorder
- audio: narration audio collaborators
- storage: workspace paths, codio files and archives
- api: HTTP transport surface
"""

__version__ = "0.2.0"
