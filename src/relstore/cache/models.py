# src/relstore/cache/models.py
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Column, String
from sqlmodel import Field, SQLModel

from relstore.infrastructure.ddl import Document, Timestamp


class CacheEntry(SQLModel, table=True):
    __tablename__ = "cache"
    __table_args__ = {"info": {"unlogged": True}}

    resource_type: str = Field(sa_column=Column(String, primary_key=True))
    key: str = Field(sa_column=Column(String, primary_key=True))
    value: Any = Field(sa_column=Column(Document, nullable=False))
    expires_at: Optional[datetime] = Field(default=None, sa_column=Column(Timestamp, nullable=True))
    created_at: datetime = Field(sa_column=Column(Timestamp, nullable=False))
