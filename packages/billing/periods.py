"""
Time helpers for billing periods and event ordering.

Everything is UTC. SQLite hands back naive datetimes, so domain models
normalize through UTCDateTime.
"""

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import AfterValidator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UTCDateTime = Annotated[datetime, AfterValidator(as_utc)]


def from_unix(timestamp: Optional[int]) -> Optional[datetime]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def to_sequence(moment: datetime) -> int:
    """Ordering marker for an event: microseconds since the epoch."""
    moment = as_utc(moment)
    delta = moment - datetime(1970, 1, 1, tzinfo=timezone.utc)
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def period_key_for(moment: datetime) -> str:
    """Calendar-month quota period, e.g. '2026-10'."""
    return as_utc(moment).strftime("%Y-%m")


def next_period_start(moment: datetime) -> datetime:
    """First instant of the month after moment (quota reset time)."""
    moment = as_utc(moment)
    if moment.month == 12:
        return datetime(moment.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(moment.year, moment.month + 1, 1, tzinfo=timezone.utc)
