"""
Health check endpoints for production deployment.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check (can the app handle requests?)
- /metrics - Room and connection metrics for monitoring
"""

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_room_manager = None
_transport = None


def set_health_dependencies(
    room_manager=None,
    transport=None,
):
    """Set dependencies for health checks."""
    global _room_manager, _transport
    _room_manager = room_manager
    _transport = transport


@router.get("/health")
async def health_check():
    """
    Basic liveness check - is the app running?

    This endpoint should always return 200 if the process is alive.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - can the app handle requests?

    Returns 503 until the room registry and transport are wired up.
    """
    checks = {}
    overall_healthy = True

    if _room_manager is not None:
        checks["rooms"] = {"status": "ok", "count": len(_room_manager.rooms)}
    else:
        checks["rooms"] = {"status": "error", "message": "room registry not initialized"}
        overall_healthy = False

    if _transport is not None:
        checks["transport"] = {"status": "ok"}
    else:
        checks["transport"] = {"status": "error", "message": "transport not initialized"}
        overall_healthy = False

    status_code = 200 if overall_healthy else 503
    return Response(
        content=json.dumps({
            "status": "ok" if overall_healthy else "degraded",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }),
        status_code=status_code,
        media_type="application/json",
    )


@router.get("/metrics")
async def metrics():
    """Expose room, player and connection counts."""
    metrics_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if _room_manager is not None:
        rooms = list(_room_manager.rooms.values())
        metrics_data.update({
            "active_rooms": len(rooms),
            "total_players": sum(len(r.players) for r in rooms),
            "games_in_progress": sum(1 for r in rooms if r.game_state.value == "playing"),
        })

    if _transport is not None:
        metrics_data["connected_websockets"] = _transport.connection_count()

    return metrics_data
