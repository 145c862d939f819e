# src/relstore/migrations/auth.py
"""
Auth module schema history.

Each step carries its own frozen table snapshot so later model changes never
rewrite what an earlier step creates. Everything is create-if-not-exists:
re-running a step that was half applied is safe.
"""
from datetime import date

from sqlalchemy import Column, ForeignKey, Index, MetaData, String, Table, Uuid, text
from sqlalchemy.schema import CreateIndex, CreateTable

from relstore.infrastructure.ddl import Document, InetAddress, Timestamp

from .catalog import AUTH, Migration

_NOT_DELETED = text("deleted_at IS NULL")

# 2024-03-05
_v20240305 = MetaData()

user = Table(
    "user",
    _v20240305,
    Column("id", Uuid, primary_key=True),
    Column("email", String, nullable=True),
    Column("phone_number", String, nullable=True),
    Column("password_hash", String, nullable=True),
    Column("user_metadata", Document, nullable=False),
    Column("created_at", Timestamp, nullable=False),
    Column("updated_at", Timestamp, nullable=False),
    Column("deleted_at", Timestamp, nullable=True),
)

session = Table(
    "session",
    _v20240305,
    Column("id", Uuid, primary_key=True),
    Column("user_id", Uuid, ForeignKey("user.id"), nullable=False),
    Column("created_at", Timestamp, nullable=False),
    Column("expires_at", Timestamp, nullable=False),
    Column("ip_address", InetAddress, nullable=True),
    Column("user_agent", String, nullable=True),
)

one_time_token = Table(
    "one_time_token",
    _v20240305,
    Column("id", Uuid, primary_key=True),
    Column("user_id", Uuid, ForeignKey("user.id"), nullable=False),
    Column("token_type", String, nullable=False),
    Column("token_hash", String, nullable=False),
    Column("created_at", Timestamp, nullable=False),
    Column("expires_at", Timestamp, nullable=False),
    Column("deleted_at", Timestamp, nullable=True),
)

user_email_key = Index(
    "user_email_key", user.c.email, unique=True,
    postgresql_where=_NOT_DELETED, sqlite_where=_NOT_DELETED,
)
user_phone_number_key = Index(
    "user_phone_number_key", user.c.phone_number, unique=True,
    postgresql_where=_NOT_DELETED, sqlite_where=_NOT_DELETED,
)
session_user_id_idx = Index("session_user_id_idx", session.c.user_id)

# 2024-06-12
one_time_token_lookup_idx = Index(
    "one_time_token_lookup_idx", one_time_token.c.token_type, one_time_token.c.token_hash
)
one_time_token_user_id_idx = Index("one_time_token_user_id_idx", one_time_token.c.user_id)
session_expires_at_idx = Index("session_expires_at_idx", session.c.expires_at)


MIGRATIONS = [
    Migration(
        module=AUTH,
        tag=date(2024, 3, 5),
        name="create_auth_tables",
        statements=(
            CreateTable(user, if_not_exists=True),
            CreateTable(session, if_not_exists=True),
            CreateTable(one_time_token, if_not_exists=True),
            CreateIndex(user_email_key, if_not_exists=True),
            CreateIndex(user_phone_number_key, if_not_exists=True),
            CreateIndex(session_user_id_idx, if_not_exists=True),
        ),
    ),
    Migration(
        module=AUTH,
        tag=date(2024, 6, 12),
        name="token_lookup_and_expiry_indexes",
        statements=(
            CreateIndex(one_time_token_lookup_idx, if_not_exists=True),
            CreateIndex(one_time_token_user_id_idx, if_not_exists=True),
            CreateIndex(session_expires_at_idx, if_not_exists=True),
        ),
    ),
]
