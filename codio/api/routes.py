"""System API Routes for Codio.

Health check and Prometheus metrics exposition.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Response

from codio import __version__
from codio.api.dependencies import PlayerDep, SettingsDep, get_audio_backend
from codio.api.models import HealthResponse
from codio.observability.metrics import get_metrics, get_metrics_content_type

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


@router.get(
    "/api/v1/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check API health and audio tool availability",
)
async def health_check(player: PlayerDep, settings: SettingsDep) -> HealthResponse:
    """Report the player state and whether narration audio is available.

    Missing audio tools degrade the service but do not make it unhealthy,
    since playback continues editor-only.
    """
    checks: dict[str, dict[str, Any]] = {
        "player": {"status": "healthy", "state": player.state.value},
    }

    if settings.AUDIO_ENABLED:
        available = get_audio_backend() is not None
        checks["audio"] = {"status": "healthy" if available else "unavailable"}
    else:
        checks["audio"] = {"status": "disabled"}

    degraded = checks["audio"]["status"] == "unavailable"
    return HealthResponse(
        status="degraded" if degraded else "healthy",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


__all__ = ["router"]
