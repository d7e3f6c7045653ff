import functools
import hashlib
import json
from typing import Callable, Optional, Type
from pydantic import BaseModel

from common.core.otel_axiom_exporter import get_logger
from .factory import get_cache_provider

logger = get_logger(__name__)


def _generate_cache_key(func: Callable, args: tuple, kwargs: dict) -> str:
    """Default key: <Class>:<method>:<hash of args>."""
    if args and hasattr(args[0], func.__name__):
        owner = args[0].__class__.__name__
        key_args = args[1:]
    else:
        owner = func.__module__.split(".")[-1]
        key_args = args

    if not key_args and not kwargs:
        return f"{owner}:{func.__name__}"

    args_json = json.dumps(
        {"args": key_args, "kwargs": dict(sorted(kwargs.items()))},
        sort_keys=True,
        default=str,
    )
    args_hash = hashlib.md5(args_json.encode()).hexdigest()[:8]
    return f"{owner}:{func.__name__}:{args_hash}"


def cache(
    model_type: Type[BaseModel],
    ttl: int = 3600,
    key_generator: Optional[Callable[..., str]] = None,
):
    """
    Read-through cache decorator for async methods returning a pydantic model.

    A cache failure never fails the call: it is logged and the wrapped
    function runs as on a miss. None results are not cached.

    Args:
        model_type: Pydantic model used to rebuild cached values
        ttl: Time to live in seconds
        key_generator: Builds the key from the call's arguments (without self)
    """

    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            cache_key = None
            try:
                if key_generator:
                    is_method = args and hasattr(args[0], func.__name__)
                    key_args = args[1:] if is_method else args
                    cache_key = key_generator(*key_args, **kwargs)
                else:
                    cache_key = _generate_cache_key(func, args, kwargs)

                cached_value = await get_cache_provider().get(cache_key)
                if cached_value is not None:
                    logger.debug(f"Cache hit for key: {cache_key}")
                    return model_type.model_validate(cached_value)
            except Exception as e:
                logger.warning(f"Cache lookup failed for {func.__name__}: {e}")

            result = await func(*args, **kwargs)

            if cache_key and result is not None:
                try:
                    await get_cache_provider().set(
                        cache_key, result.model_dump(mode="json"), ttl
                    )
                except Exception as e:
                    logger.warning(f"Cache set failed for key {cache_key}: {e}")

            return result

        return wrapper

    return decorator
