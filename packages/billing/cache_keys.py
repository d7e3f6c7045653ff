"""Cache key generators for billing package."""


def subscription_by_account_key(account_id: int) -> str:
    """Generate cache key for subscription by account ID."""
    return f"account:{account_id}:subscription"
