"""
Database entity for subscriptions.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Boolean, BigInteger
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType


class SubscriptionEntity(Base):
    """
    Subscription aggregate database entity.

    One row per account. Plan, status, period and external reference columns
    are written only by the reconciler, guarded by last_event_sequence.
    """

    __tablename__ = "subscriptions"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    account_id = Column(
        BigIntegerType,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    plan = Column(String(50), nullable=False, server_default="free")  # free, tier1..3
    status = Column(
        String(50), nullable=False, server_default="inactive", index=True
    )  # inactive, trialing, active, past_due, canceled

    # External platform IDs
    external_subscription_ref = Column(String(255), nullable=True, unique=True)
    external_customer_ref = Column(String(255), nullable=True, index=True)

    # Billing cycle (unset until the first provider event)
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    grace_until = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    canceled_at = Column(DateTime(timezone=True), nullable=True)

    # Ordering marker: provider timestamp of the last applied event (microseconds)
    last_event_sequence = Column(BigInteger, nullable=True)
    last_event_id = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("idx_subscription_period_end", "current_period_end"),)
