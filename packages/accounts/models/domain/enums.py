from enum import Enum


class Role(str, Enum):
    """Account roles. Capabilities per role are configuration."""

    MEMBER = "member"
    SUPPORT = "support"
    ADMIN = "admin"


class Capability(str, Enum):
    """Capabilities checked by protected operations."""

    SUBSCRIPTION_OVERRIDE = "subscription.override"
    QUOTA_BYPASS = "quota.bypass"
    LEDGER_READ = "ledger.read"
    LEDGER_REPLAY = "ledger.replay"
    RATE_LIMIT_BLOCK = "ratelimit.block"
