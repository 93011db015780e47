"""
Health Check Endpoints

Health, liveness and readiness probes for container orchestration.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request, Response

router = APIRouter(tags=["health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
async def health_check(request: Request) -> Dict[str, Any]:
    """Returns 200 if the service is running."""
    config = request.app.state.config
    return {
        "status": "healthy",
        "timestamp": _now(),
        "version": config.APP_VERSION,
    }


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(request: Request, response: Response) -> Dict[str, Any]:
    """
    Readiness probe.

    Returns 503 if the database is unreachable or in-process delivery
    workers are enabled but not running.
    """
    checks = {}
    all_healthy = True

    try:
        await request.app.state.db.ping()
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)[:100]}"
        all_healthy = False

    if request.app.state.config.DELIVERY_ENABLED:
        pool = getattr(request.app.state, "worker_pool", None)
        if pool is not None and pool.running:
            checks["delivery_workers"] = "running"
        else:
            checks["delivery_workers"] = "not running"
            all_healthy = False
    else:
        checks["delivery_workers"] = "disabled"

    if not all_healthy:
        response.status_code = 503

    return {
        "status": "ready" if all_healthy else "not_ready",
        "checks": checks,
        "timestamp": _now(),
    }
