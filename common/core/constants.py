from enum import Enum


class Environment(str, Enum):
    """Environment profiles."""

    LOCAL = "local"
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class CacheBackend(str, Enum):
    """Cache provider types."""

    REDIS = "redis"
    MEMORY = "memory"


class RateLimiterBackend(str, Enum):
    """Backends for the per-identity fixed-window limiter."""

    REDIS = "redis"
    MEMORY = "memory"
