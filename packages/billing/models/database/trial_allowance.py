"""
Database entity for trial allowances.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType


class TrialAllowanceEntity(Base):
    """Non-resetting allowance per (account, feature). cap is fixed at creation."""

    __tablename__ = "trial_allowances"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    account_id = Column(
        BigIntegerType,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    feature_key = Column(String(100), nullable=False)
    used = Column(Integer, nullable=False, default=0, server_default="0")
    cap = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("account_id", "feature_key", name="uq_trial_account_feature"),
    )
