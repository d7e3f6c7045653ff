"""
Database entity for the idempotency ledger.
"""

from sqlalchemy import Column, String, DateTime, Boolean, Integer, JSON, Text, Index
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType


class LedgerEntryEntity(Base):
    """
    One row per inbound event, keyed by the provider's event ID.

    Inserted with applied=false before dispatch. The unique event_id is what
    short-circuits redeliveries; rows left unapplied are replayed by the sweep.
    """

    __tablename__ = "event_ledger"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    event_id = Column(String(255), nullable=False, unique=True, index=True)
    event_type = Column(String(100), nullable=False, index=True)
    source = Column(String(50), nullable=False, server_default="stripe")
    account_id = Column(BigIntegerType, nullable=True, index=True)

    occurred_at = Column(DateTime(timezone=True), nullable=False)
    received_at = Column(DateTime(timezone=True), server_default=func.now())

    applied = Column(Boolean, nullable=False, default=False, server_default="false")
    outcome = Column(String(50), nullable=True)  # applied, stale, ignored
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0, server_default="0")
    delivery_count = Column(Integer, nullable=False, default=1, server_default="1")

    # Raw event body, kept so the sweep can replay it
    payload = Column(JSON, nullable=False)
    applied_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_ledger_pending", "applied", "received_at"),)
