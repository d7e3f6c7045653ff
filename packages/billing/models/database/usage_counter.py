"""
Database entity for period usage counters.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType


class UsageCounterEntity(Base):
    """
    Usage count per (account, operation class, period).

    A new period gets a new row; count never decreases. The limit is resolved
    from the plan at check time and is not stored.
    """

    __tablename__ = "usage_counters"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    account_id = Column(
        BigIntegerType,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    operation_class = Column(String(100), nullable=False)
    period_key = Column(String(7), nullable=False)  # YYYY-MM (UTC)
    count = Column(Integer, nullable=False, default=0, server_default="0")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "account_id",
            "operation_class",
            "period_key",
            name="uq_usage_counter_account_class_period",
        ),
    )
