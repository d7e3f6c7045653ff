from typing import Optional
from fastapi import Depends, Request, Response

from common.providers.rate_limiter.factory import get_rate_limiter
from common.providers.rate_limiter.interface import RateLimitDecision
from common.core.exceptions import RateLimited, ValidationError
from common.core.otel_axiom_exporter import get_logger
from packages.accounts.dependencies import get_current_account
from packages.accounts.models.domain.account import AuthenticatedAccount
from packages.billing.services.usage_gate import UsageGate

logger = get_logger(__name__)


def get_usage_gate() -> UsageGate:
    """Get UsageGate instance."""
    return UsageGate()


def client_address(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit_identity(
    request: Request, account: Optional[AuthenticatedAccount] = None
) -> str:
    if account is not None:
        return f"account:{account.account_id}"
    return f"ip:{client_address(request)}"


IDENTITY_KINDS = ("account", "ip")


def validate_identity(identity: str) -> str:
    """Only identities rate_limit_identity() can produce are accepted."""
    kind, _, value = identity.partition(":")
    if kind not in IDENTITY_KINDS or not value:
        raise ValidationError(
            f"Identity must look like account:<id> or ip:<address>, got {identity!r}"
        )
    return identity


def set_rate_limit_headers(response: Response, decision: RateLimitDecision) -> None:
    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    response.headers["X-RateLimit-Reset"] = str(int(decision.reset_at.timestamp()))


def rate_limited(bucket: str, authenticated: bool = True):
    """
    Dependency factory: count the request against bucket.

    Authenticated routes are limited per account, anonymous ones per client
    address.
    """

    async def limit_authenticated(
        request: Request,
        response: Response,
        current_account: AuthenticatedAccount = Depends(get_current_account),
    ) -> AuthenticatedAccount:
        await _enforce(request, response, bucket, current_account)
        return current_account

    async def limit_anonymous(request: Request, response: Response) -> None:
        await _enforce(request, response, bucket, None)

    return limit_authenticated if authenticated else limit_anonymous


async def _enforce(
    request: Request,
    response: Response,
    bucket: str,
    account: Optional[AuthenticatedAccount],
) -> RateLimitDecision:
    decision = await get_rate_limiter().allow(rate_limit_identity(request, account), bucket)
    if not decision.allowed:
        raise RateLimited(
            decision.bucket, decision.limit, decision.remaining, decision.reset_at
        )
    set_rate_limit_headers(response, decision)
    return decision

