"""
Prometheus Metrics for Codio.

Provides metrics collection for monitoring playback sessions, transport
actions, frame reconstruction cost and recording throughput.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# =============================================================================
# Core Metrics Definitions
# =============================================================================

# Playback sessions currently playing or paused
PLAYBACK_SESSIONS_ACTIVE = Gauge(
    "codio_playback_sessions_active",
    "Number of playback sessions in progress",
)

# Transport commands issued against a player
TRANSPORT_ACTIONS = Counter(
    "codio_transport_actions_total",
    "Transport actions received by the player",
    ["action"],  # action: play/pause/resume/rewind/forward/seek/stop/interaction
)

# State machine transitions
PLAYER_TRANSITIONS = Counter(
    "codio_player_transitions_total",
    "Player state transitions",
    ["from_state", "to_state"],
)

# Frame reconstruction
MATERIALIZE_LATENCY = Histogram(
    "codio_materialize_latency_seconds",
    "Time spent materializing an editor frame",
    ["path"],  # path: incremental/rebuild
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

EVENTS_SKIPPED = Counter(
    "codio_events_skipped_total",
    "Events skipped during replay",
    ["reason"],  # reason: unresolved/missing_document
)

# Recording
EVENTS_RECORDED = Counter(
    "codio_events_recorded_total",
    "Editor events captured by the recorder",
    ["type"],
)

# External audio process
AUDIO_FAILURES = Counter(
    "codio_audio_failures_total",
    "Failures of the external audio process",
    ["operation"],  # operation: play/pause/resume/stop/record
)


# =============================================================================
# Helper Functions
# =============================================================================


def track_transport_action(action: str) -> None:
    """Count a transport action."""
    TRANSPORT_ACTIONS.labels(action=action).inc()


def track_transition(from_state: str, to_state: str) -> None:
    """Count a player state transition."""
    PLAYER_TRANSITIONS.labels(from_state=from_state, to_state=to_state).inc()


def track_skipped_event(reason: str) -> None:
    """Count an event skipped during replay."""
    EVENTS_SKIPPED.labels(reason=reason).inc()


def track_recorded_event(event_type: str) -> None:
    """Count an event captured by the recorder."""
    EVENTS_RECORDED.labels(type=event_type).inc()


def track_audio_failure(operation: str) -> None:
    """Count a failed audio process operation."""
    AUDIO_FAILURES.labels(operation=operation).inc()


@contextmanager
def track_materialize(path: str) -> Generator[None, None, None]:
    """Context manager timing one frame materialization.

    Example:
        with track_materialize("rebuild"):
            ...
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        MATERIALIZE_LATENCY.labels(path=path).observe(time.perf_counter() - start)


# =============================================================================
# Metrics Endpoint
# =============================================================================


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


__all__ = [
    "PLAYBACK_SESSIONS_ACTIVE",
    "TRANSPORT_ACTIONS",
    "PLAYER_TRANSITIONS",
    "MATERIALIZE_LATENCY",
    "EVENTS_SKIPPED",
    "EVENTS_RECORDED",
    "AUDIO_FAILURES",
    "track_transport_action",
    "track_transition",
    "track_skipped_event",
    "track_recorded_event",
    "track_audio_failure",
    "track_materialize",
    "get_metrics",
    "get_metrics_content_type",
]
