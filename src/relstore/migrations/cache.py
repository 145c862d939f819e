# src/relstore/migrations/cache.py
from datetime import date

from sqlalchemy import Column, Index, MetaData, String, Table
from sqlalchemy.schema import CreateIndex, CreateTable

from relstore.infrastructure.ddl import Document, Timestamp

from .catalog import CACHE, Migration

# 2024-03-05
_v20240305 = MetaData()

cache = Table(
    "cache",
    _v20240305,
    Column("resource_type", String, primary_key=True),
    Column("key", String, primary_key=True),
    Column("value", Document, nullable=False),
    Column("expires_at", Timestamp, nullable=True),
    Column("created_at", Timestamp, nullable=False),
    info={"unlogged": True},
)

# 2024-09-20
cache_expires_at_idx = Index("cache_expires_at_idx", cache.c.expires_at)


MIGRATIONS = [
    Migration(
        module=CACHE,
        tag=date(2024, 3, 5),
        name="create_cache_table",
        statements=(CreateTable(cache, if_not_exists=True),),
    ),
    Migration(
        module=CACHE,
        tag=date(2024, 9, 20),
        name="cache_expiry_index",
        statements=(CreateIndex(cache_expires_at_idx, if_not_exists=True),),
    ),
]
