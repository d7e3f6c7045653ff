"""
Database entity for usage events.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, JSON, Integer
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType


class UsageEventEntity(Base):
    """
    Usage event database entity.

    Append-only audit of every granted unit of usage, including bypasses.
    Never read by the enforcer.
    """

    __tablename__ = "usage_events"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    account_id = Column(
        BigIntegerType,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Operation class for quota/bypass grants, feature key for trial grants
    operation_class = Column(String(100), nullable=False, index=True)
    source = Column(String(50), nullable=False)  # quota, trial, bypass
    amount = Column(Integer, nullable=False, server_default="1")
    period_key = Column(String(7), nullable=True)

    # Request context, e.g. {"bucket": "expensive-api"}
    event_metadata = Column("metadata", JSON, nullable=False, server_default="{}")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        Index("idx_usage_account_class_date", "account_id", "operation_class", "created_at"),
    )
