from datetime import datetime
from typing import Optional


class AppException(Exception):
    """Base application exception."""

    pass


class NotFoundError(AppException):
    """Resource not found exception."""

    pass


class ValidationError(AppException):
    """Validation error exception."""

    pass


class ConflictError(AppException):
    """Write rejected by a uniqueness constraint or lost to concurrent writers."""

    pass


class Unauthenticated(AppException):
    """Signature, secret or API key did not verify. No state was changed."""

    pass


class PermissionDenied(AppException):
    """Caller is authenticated but lacks the required capability."""

    def __init__(self, capability: str):
        self.capability = capability
        super().__init__(f"Missing capability: {capability}")


class MalformedEvent(AppException):
    """Inbound event could not be parsed into an event envelope."""

    def __init__(self, message: str, event_id: Optional[str] = None):
        self.event_id = event_id
        super().__init__(message)


class StaleEvent(AppException):
    """Event does not advance the aggregate's last-applied marker."""

    def __init__(
        self,
        event_id: str,
        account_id: int,
        sequence: int,
        last_sequence: Optional[int],
    ):
        self.event_id = event_id
        self.account_id = account_id
        self.sequence = sequence
        self.last_sequence = last_sequence
        super().__init__(
            f"Event {event_id} for account {account_id} is stale "
            f"(sequence {sequence} <= {last_sequence})"
        )


class QuotaExceeded(AppException):
    """Business-rule rejection: period quota for an operation class is used up."""

    def __init__(
        self,
        operation_class: str,
        limit: int,
        remaining: int,
        reset_at: datetime,
    ):
        self.operation_class = operation_class
        self.limit = limit
        self.remaining = remaining
        self.reset_at = reset_at
        super().__init__(
            f"Quota for {operation_class} exceeded ({limit:,} per period)"
        )


class TrialExhausted(AppException):
    """Business-rule rejection: the non-resetting trial allowance is used up."""

    def __init__(self, feature_key: str, used: int, cap: int):
        self.feature_key = feature_key
        self.used = used
        self.cap = cap
        super().__init__(f"Trial for {feature_key} exhausted ({used}/{cap})")


class RateLimited(AppException):
    """Transient rejection; retry after reset_at."""

    def __init__(self, bucket: str, limit: int, remaining: int, reset_at: datetime):
        self.bucket = bucket
        self.limit = limit
        self.remaining = remaining
        self.reset_at = reset_at
        super().__init__(f"Rate limit exceeded for bucket {bucket}")


class StoreUnavailable(AppException):
    """Infrastructure fault after bounded retries. Retryable."""

    def __init__(self, message: str, retry_after_seconds: int = 1):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message)
