# src/relstore/auth/schemas.py
import uuid
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field, IPvAnyAddress, field_validator

from relstore.records import Lifecycle, Record, UtcDatetime


class UserCreate(BaseModel):
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    password_hash: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class UserUpdate(BaseModel):
    """Only the fields explicitly set are written; set a field to None to clear it."""
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    password_hash: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class UserRecord(Record):
    id: uuid.UUID
    email: Optional[str] = None
    phone_number: Optional[str] = None
    password_hash: Optional[str] = None
    metadata: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("user_metadata", "metadata")
    )
    created_at: UtcDatetime
    updated_at: UtcDatetime
    deleted_at: Optional[UtcDatetime] = None

    @property
    def lifecycle(self) -> Lifecycle:
        return Lifecycle.DELETED if self.deleted_at else Lifecycle.ACTIVE


class SessionCreate(BaseModel):
    user_id: uuid.UUID
    expires_at: UtcDatetime
    ip_address: Optional[IPvAnyAddress] = None
    user_agent: Optional[str] = None


class SessionRecord(Record):
    id: uuid.UUID
    user_id: uuid.UUID
    created_at: UtcDatetime
    expires_at: UtcDatetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @field_validator("ip_address", mode="before")
    @classmethod
    def _inet_as_text(cls, v):
        # asyncpg decodes inet columns into ipaddress objects
        return None if v is None else str(v)


class OneTimeTokenCreate(BaseModel):
    user_id: uuid.UUID
    token_type: str
    token_hash: str
    expires_at: UtcDatetime


class OneTimeTokenRecord(Record):
    id: uuid.UUID
    user_id: uuid.UUID
    token_type: str
    token_hash: str
    created_at: UtcDatetime
    expires_at: UtcDatetime
    deleted_at: Optional[UtcDatetime] = None

    @property
    def lifecycle(self) -> Lifecycle:
        return Lifecycle.DELETED if self.deleted_at else Lifecycle.ACTIVE
