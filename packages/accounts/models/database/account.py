from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType


class AccountEntity(Base):
    __tablename__ = "accounts"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    # Stored normalized (stripped, lower-cased); one account per contact
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)
    role = Column(String, nullable=False, default="member", server_default="member")
    api_key_hash = Column(String, nullable=False, unique=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
