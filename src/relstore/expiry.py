# src/relstore/expiry.py
"""
Lazy expiry shared by session and cache reads.

A row whose expires_at has been reached by the database clock is reported as
absent and deleted by its exact key on the way out, guarded by the same expiry
condition so a value rewritten in the meantime survives. The delete is
idempotent (a concurrent reader deleting the same row first just leaves zero
rows affected) and best effort: a failed cleanup is logged and the expired row stays
until the next read or purge.
"""
from datetime import timedelta

import structlog
from sqlalchemy import and_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel.ext.asyncio.session import AsyncSession

logger = structlog.get_logger(__name__)


def expired_clause(column) -> ColumnElement:
    # NULL expiry never expires
    return and_(column.is_not(None), column <= func.now())


def expires_in(delta: timedelta, dialect_name: str) -> ColumnElement:
    """`now + delta` evaluated on the database clock."""
    if dialect_name == "sqlite":
        # text timestamps, so this has to sort against CURRENT_TIMESTAMP
        return func.strftime("%Y-%m-%d %H:%M:%f", "now", f"+{delta.total_seconds()} seconds")
    return func.now() + delta


async def discard_expired(session: AsyncSession, stmt, **context) -> None:
    try:
        res = await session.execute(stmt)
        await session.commit()
    except (SQLAlchemyError, OSError) as e:
        logger.warning("expired_row_cleanup_failed", error=str(e), **context)
        return
    logger.debug("expired_row_deleted", rows=res.rowcount, **context)
