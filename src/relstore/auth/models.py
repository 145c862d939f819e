# src/relstore/auth/models.py
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, ForeignKey, Index, String, Uuid, text
from sqlmodel import Field, SQLModel

from relstore.infrastructure.ddl import Document, InetAddress, Timestamp

_NOT_DELETED = text("deleted_at IS NULL")


class User(SQLModel, table=True):
    __tablename__ = "user"
    __table_args__ = (
        Index("user_email_key", "email", unique=True, postgresql_where=_NOT_DELETED, sqlite_where=_NOT_DELETED),
        Index("user_phone_number_key", "phone_number", unique=True, postgresql_where=_NOT_DELETED, sqlite_where=_NOT_DELETED),
    )

    id: uuid.UUID = Field(sa_column=Column(Uuid, primary_key=True))
    email: Optional[str] = Field(default=None, sa_column=Column(String, nullable=True))
    phone_number: Optional[str] = Field(default=None, sa_column=Column(String, nullable=True))
    password_hash: Optional[str] = Field(default=None, sa_column=Column(String, nullable=True))
    user_metadata: dict = Field(default_factory=dict, sa_column=Column(Document, nullable=False))
    created_at: datetime = Field(sa_column=Column(Timestamp, nullable=False))
    updated_at: datetime = Field(sa_column=Column(Timestamp, nullable=False))
    deleted_at: Optional[datetime] = Field(default=None, sa_column=Column(Timestamp, nullable=True))


class UserSession(SQLModel, table=True):
    __tablename__ = "session"

    id: uuid.UUID = Field(sa_column=Column(Uuid, primary_key=True))
    user_id: uuid.UUID = Field(sa_column=Column(Uuid, ForeignKey("user.id"), nullable=False))
    created_at: datetime = Field(sa_column=Column(Timestamp, nullable=False))
    expires_at: datetime = Field(sa_column=Column(Timestamp, nullable=False))
    ip_address: Optional[str] = Field(default=None, sa_column=Column(InetAddress, nullable=True))
    user_agent: Optional[str] = Field(default=None, sa_column=Column(String, nullable=True))


class OneTimeToken(SQLModel, table=True):
    __tablename__ = "one_time_token"

    id: uuid.UUID = Field(sa_column=Column(Uuid, primary_key=True))
    user_id: uuid.UUID = Field(sa_column=Column(Uuid, ForeignKey("user.id"), nullable=False))
    token_type: str = Field(sa_column=Column(String, nullable=False))
    token_hash: str = Field(sa_column=Column(String, nullable=False))
    created_at: datetime = Field(sa_column=Column(Timestamp, nullable=False))
    expires_at: datetime = Field(sa_column=Column(Timestamp, nullable=False))
    deleted_at: Optional[datetime] = Field(default=None, sa_column=Column(Timestamp, nullable=True))
