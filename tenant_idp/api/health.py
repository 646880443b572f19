"""Health and readiness endpoints.

  /health (liveness):
    Is the process alive?  Always 200; ``status`` says whether a backing
    service is impaired.  Returning 503 here would make the orchestrator
    restart a container that is merely waiting on Redis.

  /ready (readiness):
    Can this instance serve OAuth traffic right now?  Authorization codes
    and refresh tokens live only in the ephemeral store, so a configured
    Redis that cannot be reached takes the instance out of rotation (503).
    The database is reported but not gating: userinfo and authorize fail
    with server_error on their own when it is down.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from tenant_idp.db.engine import database_status
from tenant_idp.db.redis import redis_status

router = APIRouter(tags=["health"])


async def _checks() -> dict[str, str]:
    return {"redis": await redis_status(), "database": await database_status()}


@router.get("/health")
async def health() -> dict:
    """Liveness probe plus per-dependency status."""
    checks = await _checks()
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> JSONResponse:
    """Readiness probe: 503 while a configured Redis is unreachable."""
    checks = await _checks()
    if checks["redis"] == "degraded":
        return JSONResponse({"status": "not_ready", "checks": checks}, status_code=503)
    return JSONResponse({"status": "ready", "checks": checks})
