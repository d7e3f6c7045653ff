from fastapi import APIRouter, Request

from common.providers.rate_limiter.limiter import limiter
from internal.routes.probes import readyz

router = APIRouter()


@router.get("/")
async def health_check(request: Request):
    # No rate limiting or logging - k8s probes hit this every 5-10s
    return {"status": "healthy", "service": "billing-reconciler"}


@router.get("/ready")
@limiter.limit("100/minute")
async def ready_check(request: Request):
    return await readyz()
