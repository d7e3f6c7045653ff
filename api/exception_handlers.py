"""
HTTP mapping for the application error taxonomy.

Registered on the app next to slowapi's RateLimitExceeded handler; services
raise domain errors and routes let them propagate.
"""

import math
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from common.core.exceptions import (
    ConflictError,
    MalformedEvent,
    NotFoundError,
    PermissionDenied,
    QuotaExceeded,
    RateLimited,
    StaleEvent,
    StoreUnavailable,
    TrialExhausted,
    Unauthenticated,
    ValidationError,
)
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)

WEBHOOK_PATH_PREFIX = "/api/v1/webhooks/"


def _seconds_until(moment: datetime) -> int:
    return max(1, math.ceil((moment - datetime.now(timezone.utc)).total_seconds()))


def _error(status_code: int, error: str, detail: str, headers=None, **fields) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": detail, **fields},
        headers=headers,
    )


async def unauthenticated_handler(request: Request, exc: Unauthenticated):
    # Providers treat 4xx as permanent; a bad signature must not be retried as auth
    if request.url.path.startswith(WEBHOOK_PATH_PREFIX):
        logger.warning(f"Rejected webhook delivery: {exc}")
        return _error(400, "invalid_signature", str(exc))
    return _error(401, "unauthenticated", str(exc), headers={"WWW-Authenticate": "ApiKey"})


async def malformed_event_handler(request: Request, exc: MalformedEvent):
    logger.warning(f"Rejected malformed event {exc.event_id}: {exc}")
    return _error(400, "malformed_event", str(exc), event_id=exc.event_id)


async def stale_event_handler(request: Request, exc: StaleEvent):
    return _error(
        409,
        "stale_event",
        str(exc),
        event_id=exc.event_id,
        account_id=exc.account_id,
    )


async def quota_exceeded_handler(request: Request, exc: QuotaExceeded):
    return _error(
        429,
        "quota_exceeded",
        str(exc),
        operation_class=exc.operation_class,
        limit=exc.limit,
        remaining=exc.remaining,
        reset_at=exc.reset_at.isoformat(),
    )


async def trial_exhausted_handler(request: Request, exc: TrialExhausted):
    return _error(
        402,
        "trial_exhausted",
        str(exc),
        feature_key=exc.feature_key,
        used=exc.used,
        cap=exc.cap,
    )


async def rate_limited_handler(request: Request, exc: RateLimited):
    return _error(
        429,
        "rate_limited",
        str(exc),
        headers={
            "Retry-After": str(_seconds_until(exc.reset_at)),
            "X-RateLimit-Limit": str(exc.limit),
            "X-RateLimit-Remaining": str(exc.remaining),
            "X-RateLimit-Reset": str(int(exc.reset_at.timestamp())),
        },
        bucket=exc.bucket,
        reset_at=exc.reset_at.isoformat(),
    )


async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    return _error(
        503,
        "store_unavailable",
        str(exc),
        headers={"Retry-After": str(exc.retry_after_seconds)},
    )


async def validation_error_handler(request: Request, exc: ValidationError):
    return _error(422, "validation_error", str(exc))


async def not_found_handler(request: Request, exc: NotFoundError):
    return _error(404, "not_found", str(exc))


async def conflict_handler(request: Request, exc: ConflictError):
    return _error(409, "conflict", str(exc))


async def permission_denied_handler(request: Request, exc: PermissionDenied):
    return _error(403, "permission_denied", str(exc), capability=exc.capability)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(Unauthenticated, unauthenticated_handler)
    app.add_exception_handler(MalformedEvent, malformed_event_handler)
    app.add_exception_handler(StaleEvent, stale_event_handler)
    app.add_exception_handler(QuotaExceeded, quota_exceeded_handler)
    app.add_exception_handler(TrialExhausted, trial_exhausted_handler)
    app.add_exception_handler(RateLimited, rate_limited_handler)
    app.add_exception_handler(StoreUnavailable, store_unavailable_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(ConflictError, conflict_handler)
    app.add_exception_handler(PermissionDenied, permission_denied_handler)
