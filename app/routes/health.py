"""
Health check endpoints.

/healthz is liveness only. /readyz checks the dependencies of the configured
store backend: nothing for the in-memory backend, the database pool (and
Redis when configured) for the Postgres backend.
"""

import time

from fastapi import APIRouter, Request, Response, status

from app.config import settings
from app.db.pool import db_health_check
from app.infrastructure.observability.logging import log_dependency_check
from app.services.redis_client import fast_redis

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "matchmaking-engine"}


@router.get("/readyz")
async def readyz(request: Request, response: Response):
    """Readiness check for the configured backend."""
    checks = {}
    overall_ok = True

    checks["store"] = {
        "ok": getattr(request.app.state, "matchmaking", None) is not None,
        "backend": settings.STORE_BACKEND,
    }
    overall_ok = overall_ok and checks["store"]["ok"]

    if settings.uses_postgres():
        # 1) Database pool
        t0 = time.time()
        try:
            db_health = await db_health_check()
            is_healthy = db_health.get("healthy", False)
            checks["database"] = {
                "ok": is_healthy,
                "latency_ms": round((time.time() - t0) * 1000, 1),
            }
            if "pool_stats" in db_health:
                checks["database"]["pool_stats"] = db_health["pool_stats"]
            if not is_healthy:
                checks["database"]["error"] = db_health.get("error", "Database unhealthy")
            log_dependency_check(
                "database", is_healthy, checks["database"]["latency_ms"], db_health.get("error")
            )
            overall_ok = overall_ok and is_healthy
        except Exception as e:
            checks["database"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
            overall_ok = False

        # 2) Redis (dedup ledger)
        if fast_redis.configured:
            t0 = time.time()
            redis_ok = await fast_redis.ping()
            checks["redis"] = {
                "ok": redis_ok,
                "latency_ms": round((time.time() - t0) * 1000, 1),
            }
            log_dependency_check("redis", redis_ok, checks["redis"]["latency_ms"])
            overall_ok = overall_ok and redis_ok

    # 3) Configuration
    config_issues = []
    if settings.uses_postgres() and not settings.DATABASE_URL:
        config_issues.append("DATABASE_URL not set")
    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues or None,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and not config_issues

    if not overall_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
