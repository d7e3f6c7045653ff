from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator

from packages.accounts.models.domain.enums import Role


def normalize_email(email: str) -> str:
    return email.strip().lower()


class Account(BaseModel):
    """Domain model for accounts"""

    id: int
    email: str
    name: Optional[str] = None
    role: Role = Role.MEMBER
    api_key_hash: str
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AccountCreate(BaseModel):
    """Public input for creating an account"""

    email: str
    name: Optional[str] = None
    role: Role = Role.MEMBER

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = normalize_email(v)
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("email must be a valid address")
        return v


class AccountCreateModel(BaseModel):
    """Internal model for repository creation (includes api_key_hash)"""

    email: str
    name: Optional[str] = None
    role: Role = Role.MEMBER
    api_key_hash: str


class AccountWithApiKey(BaseModel):
    """Account with plain text API key (only returned on creation)"""

    account: Account
    api_key: str


class AuthenticatedAccount(BaseModel):
    """Account context passed through authentication dependencies"""

    account_id: int
    email: str
    role: Role

    class Config:
        from_attributes = True
