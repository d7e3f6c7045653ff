from fastapi import APIRouter

from api.v1.routes import (
    health,
)
from packages.billing.routes import admin, billing, webhooks

api_router = APIRouter()

# Health check (no auth required)
api_router.include_router(health.router, prefix="/health", tags=["health"])

# Webhooks (no auth - signature verified internally)
api_router.include_router(webhooks.router, tags=["webhooks"])

# Billing routes (auth via x-api-key, resolved per route)
api_router.include_router(billing.router, prefix="/billing", tags=["billing"])

# Admin routes (capability checked per route)
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
