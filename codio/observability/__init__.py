"""
Codio Observability Package.

Prometheus metrics for playback sessions, transport actions, frame
reconstruction and recording.
"""

from codio.observability.metrics import get_metrics, get_metrics_content_type

__all__ = ["get_metrics", "get_metrics_content_type"]
