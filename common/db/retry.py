"""Bounded timeout and backoff for store round-trips."""

import asyncio
import functools
import random
from typing import Awaitable, Callable, Optional, TypeVar, ParamSpec

from sqlalchemy.exc import DBAPIError, OperationalError, InterfaceError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from common.core.config import settings
from common.core.exceptions import StoreUnavailable
from common.core.otel_axiom_exporter import get_logger
from common.db.context import in_transaction

logger = get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def is_transient_store_error(error: BaseException) -> bool:
    """Connection-level faults worth retrying. Constraint violations are not."""
    if isinstance(
        error,
        (OperationalError, InterfaceError, PoolTimeoutError, asyncio.TimeoutError),
    ):
        return True
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    return False


def _backoff_seconds(attempt: int) -> float:
    base = settings.store_retry_base_delay_ms * (2**attempt)
    capped = min(base, settings.store_retry_max_delay_ms)
    # Full jitter so concurrent callers don't retry in lockstep
    return random.uniform(0, capped) / 1000


async def run_with_store_retry(
    operation: Callable[[], Awaitable[T]], operation_name: str
) -> T:
    """
    Run a unit of store work with a timeout per attempt and exponential backoff.

    Raises StoreUnavailable once attempts are exhausted. Inside an enclosing
    transaction the session state cannot be replayed, so the first transient
    failure is translated without retrying.
    """
    attempts = 1 if in_transaction() else max(1, settings.store_retry_attempts)
    last_error: Optional[BaseException] = None

    for attempt in range(attempts):
        try:
            return await asyncio.wait_for(
                operation(), timeout=settings.store_timeout_seconds
            )
        except Exception as e:
            if not is_transient_store_error(e):
                raise
            last_error = e
            if attempt + 1 < attempts:
                delay = _backoff_seconds(attempt)
                logger.warning(
                    f"Store operation {operation_name} failed (attempt {attempt + 1}/{attempts}), retrying in {delay:.2f}s: {e!r}",
                    extra={"operation": operation_name, "attempt": attempt + 1},
                )
                await asyncio.sleep(delay)

    logger.error(
        f"Store operation {operation_name} failed after {attempts} attempts: {last_error!r}",
        extra={"operation": operation_name},
    )
    raise StoreUnavailable(f"Store unavailable during {operation_name}") from last_error


def with_store_retry(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Decorator form of run_with_store_retry for service entry points."""

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        return await run_with_store_retry(
            lambda: func(*args, **kwargs), func.__qualname__
        )

    return wrapper
