import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from riskmapper.api.deps import get_store
from riskmapper.store import Store

logger = structlog.get_logger(__name__)

router = APIRouter()

SERVICE_NAME = "riskmapper"


@router.get("/health")
async def health_check(request: Request):
    """Liveness check for the load balancer.

    Returns 503 during graceful shutdown so traffic drains before workers stop.
    """
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": SERVICE_NAME},
        )
    return {"status": "healthy", "service": SERVICE_NAME}


@router.get("/ready")
async def readiness_check(request: Request, store: Store = Depends(get_store)):
    """Readiness check - verifies the database and the report runner."""
    checks = {"database": False, "runner": False}

    try:
        await store.ping()
        checks["database"] = True
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e), error_type=type(e).__name__)

    runner = getattr(request.app.state, "runner", None)
    checks["runner"] = bool(runner is not None and runner.is_running)

    all_healthy = all(checks.values())
    status_code = 200 if all_healthy else 503

    return JSONResponse(
        status_code=status_code,
        content={"status": "ready" if all_healthy else "degraded", "checks": checks},
    )
