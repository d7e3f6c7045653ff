"""Kubernetes probe endpoints.

These endpoints are internal-only - not exposed via ingress.
Ingress only routes /api/* paths, so these root-level paths are only
reachable by k8s probes hitting the pod IP directly.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from common.core.otel_axiom_exporter import get_logger
from common.db.scoped import get_session
from common.providers.caching.factory import get_cache_provider
from common.providers.rate_limiter.factory import get_rate_limiter

logger = get_logger(__name__)

router = APIRouter(tags=["internal"])


async def _ping_db() -> bool:
    try:
        async with get_session(readonly=True) as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database ping failed: {e}")
        return False


@router.get("/healthz", include_in_schema=False)
async def healthz():
    """Liveness probe - is the process alive?"""
    return {"status": "ok"}


@router.get("/readyz", include_in_schema=False)
async def readyz():
    """Readiness probe - can the service reach its database and stores?"""
    checks = {
        "database": await _ping_db(),
        "cache": await get_cache_provider().ping(),
        "rate_limiter": await get_rate_limiter().ping(),
    }
    ready = all(checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ok" if ready else "unavailable",
            "checks": {name: "ok" if ok else "down" for name, ok in checks.items()},
        },
    )
