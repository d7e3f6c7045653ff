"""
Domain models for the idempotency ledger.
"""

from typing import Optional
from pydantic import BaseModel

from packages.billing.models.domain.enums import EventSource, LedgerOutcome
from packages.billing.periods import UTCDateTime


class LedgerEntry(BaseModel):
    """One ledgered inbound event."""

    id: int
    event_id: str
    event_type: str
    source: EventSource
    account_id: Optional[int] = None
    occurred_at: UTCDateTime
    received_at: UTCDateTime
    applied: bool
    outcome: Optional[LedgerOutcome] = None
    error: Optional[str] = None
    attempts: int
    delivery_count: int
    payload: dict
    applied_at: Optional[UTCDateTime] = None

    class Config:
        from_attributes = True


class IngestResult(BaseModel):
    """What the ingestor reports back to the webhook boundary."""

    accepted: bool
    event_id: str
    duplicate: bool = False
    outcome: Optional[LedgerOutcome] = None
    reason: Optional[str] = None


class ReplayResult(BaseModel):
    """Counts from one sweep over unapplied ledger rows."""

    scanned: int = 0
    applied: int = 0
    stale: int = 0
    ignored: int = 0
    failed: int = 0
    exhausted: int = 0
