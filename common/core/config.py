from typing import Dict, List, Optional
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.core.constants import Environment, CacheBackend, RateLimiterBackend


class RateLimitRule(BaseModel):
    """Fixed-window rule for a single rate limit bucket."""

    limit: int
    window_seconds: int
    # Sensitive buckets deny traffic when the limiter backend is unreachable
    security_sensitive: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment Profile
    environment: Environment = Environment.LOCAL

    # API Settings
    app_name: str = "billing-reconciler"
    api_version: str = "0.1.0"
    debug: bool = False

    # Database Components
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "billing"
    db_use_nullpool: bool = (
        False  # True for workers (sequential), False for API (concurrent)
    )
    db_pool_size: int = 10
    db_pool_overflow: int = 5

    @property
    def database_url(self) -> str:
        """Construct database URL from components."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # Store round-trips (bounded timeout + backoff before StoreUnavailable)
    store_timeout_seconds: float = 5.0
    store_retry_attempts: int = 3
    store_retry_base_delay_ms: int = 100
    store_retry_max_delay_ms: int = 2000

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0
    redis_url: Optional[str] = None  # For compatibility

    @property
    def redis_connection_url(self) -> str:
        """Construct Redis URL from components."""
        if self.redis_url:
            return self.redis_url
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        else:
            return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Caching
    cache_backend: CacheBackend = CacheBackend.REDIS
    subscription_cache_ttl_seconds: int = 300

    # OpenTelemetry
    otel_service_name: str = "billing-reconciler"
    otel_service_version: str = "0.1.0"

    # Axiom (exporters are only attached when a token is configured)
    axiom_token: Optional[str] = None
    axiom_dataset: str = "billing"

    # Edge limiter (slowapi, per remote address)
    edge_rate_limits: List[str] = ["20/second", "600/minute"]

    # Per-identity fixed-window limiter
    rate_limiter_backend: RateLimiterBackend = RateLimiterBackend.REDIS
    rate_limit_default_bucket: str = "api"
    rate_limit_buckets: Dict[str, RateLimitRule] = {
        "api": RateLimitRule(limit=60, window_seconds=60),
        "expensive-api": RateLimitRule(limit=10, window_seconds=60),
        "webhook": RateLimitRule(limit=100, window_seconds=60),
        "admin": RateLimitRule(limit=100, window_seconds=60, security_sensitive=True),
        "auth": RateLimitRule(limit=10, window_seconds=300, security_sensitive=True),
    }
    # Admin blocks on one identity, across every bucket
    rate_limit_block_default_seconds: int = 3600
    rate_limit_block_max_seconds: int = 7 * 24 * 3600

    # Entitlement
    # Days an active/past_due subscription keeps its plan after period end
    entitlement_grace_tolerance_days: int = 3
    quota_warning_threshold: float = 0.8

    # Admin overrides may not be dated later than now plus this skew
    override_max_clock_skew_seconds: int = 60

    # Trials for unpaid accounts (never reset)
    trial_default_cap: int = 2
    trial_caps: Dict[str, int] = {"remove_background": 2}

    # Role resolution
    role_capabilities: Dict[str, List[str]] = {
        "member": [],
        "support": ["ledger.read"],
        "admin": [
            "subscription.override",
            "quota.bypass",
            "ledger.read",
            "ledger.replay",
            "ratelimit.block",
        ],
    }

    # Ledger replay sweep
    ledger_replay_interval_seconds: int = 60
    ledger_replay_batch_size: int = 100
    ledger_replay_max_attempts: int = 10
    ledger_replay_min_age_seconds: int = 30
    ledger_replay_lock_ttl_seconds: int = 300

    # Billing - Stripe (payments)
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_webhook_tolerance_seconds: int = 300
    # Stripe price IDs -> local plan ("tier1", "tier2", "tier3")
    stripe_price_plans: Dict[str, str] = {}

    @property
    def cors_allowed_origins(self) -> List[str]:
        """Auto-select CORS origins based on environment."""
        if self.environment == Environment.LOCAL:
            return [
                "http://localhost:3000",
                "http://localhost:3001",
            ]
        return []


settings = Settings()
