# src/relstore/cache/repository.py
from datetime import timedelta
from typing import Any, Optional, Union

import structlog
from sqlalchemy import delete, func
from sqlmodel import select

from relstore.expiry import discard_expired, expired_clause, expires_in
from relstore.infrastructure.ddl import upsert
from relstore.infrastructure.repository import Repository
from relstore.migrations.catalog import CACHE
from relstore.records import decode

from .models import CacheEntry
from .schemas import CacheRecord

logger = structlog.get_logger(__name__)

_cache = CacheEntry.__table__

Ttl = Union[int, float, timedelta, None]


def _ttl_delta(ttl: Ttl) -> Optional[timedelta]:
    if ttl is None:
        return None
    delta = ttl if isinstance(ttl, timedelta) else timedelta(seconds=ttl)
    if delta <= timedelta(0):
        raise ValueError("ttl must be positive, use None for entries that never expire")
    return delta


def _key(resource_type: str, key: str):
    return (_cache.c.resource_type == resource_type, _cache.c.key == key)


class CacheRepository(Repository):
    """
    Key-value entries addressed by (resource_type, key).

    set() is a last-writer-wins upsert with no history; get() applies the
    lazy expiry policy (expired entries read as absent and are deleted).
    """

    module = CACHE

    async def set(self, resource_type: str, key: str, value: Any, ttl: Ttl = None, timeout: Optional[float] = None) -> None:
        delta = _ttl_delta(ttl)
        dialect_name = self.db.dialect_name
        stmt = upsert(_cache, dialect_name).values(
            resource_type=resource_type,
            key=key,
            value=value,
            expires_at=expires_in(delta, dialect_name) if delta else None,
            created_at=func.now(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[_cache.c.resource_type, _cache.c.key],
            set_={
                "value": stmt.excluded["value"],
                "expires_at": stmt.excluded["expires_at"],
                "created_at": stmt.excluded["created_at"],
            },
        )
        async with self._session(timeout) as session:
            await session.execute(stmt)
            await session.commit()
        logger.debug("cache_set", resource_type=resource_type, key=key, ttl=str(delta) if delta else None)

    async def get(self, resource_type: str, key: str, timeout: Optional[float] = None) -> Optional[CacheRecord]:
        q = select(CacheEntry, expired_clause(_cache.c.expires_at).label("expired")).where(*_key(resource_type, key))
        async with self._session(timeout) as session:
            res = await session.execute(q)
            row = res.one_or_none()
            if row is None:
                return None
            entry, expired = row
            if expired:
                logger.debug("cache_expired_on_read", resource_type=resource_type, key=key)
                await discard_expired(
                    session,
                    delete(_cache).where(*_key(resource_type, key), expired_clause(_cache.c.expires_at)),
                    table="cache",
                    key=f"{resource_type}:{key}",
                )
                return None
        return decode(CacheRecord, entry)

    async def delete(self, resource_type: str, key: str, timeout: Optional[float] = None) -> bool:
        async with self._session(timeout) as session:
            res = await session.execute(delete(_cache).where(*_key(resource_type, key)))
            rows = res.rowcount
            await session.commit()
        logger.debug("cache_deleted", resource_type=resource_type, key=key, rows=rows)
        return rows > 0

    async def delete_resource(self, resource_type: str, timeout: Optional[float] = None) -> int:
        async with self._session(timeout) as session:
            res = await session.execute(delete(_cache).where(_cache.c.resource_type == resource_type))
            rows = res.rowcount
            await session.commit()
        logger.info("cache_resource_cleared", resource_type=resource_type, rows=rows)
        return rows

    async def purge_expired(self, resource_type: Optional[str] = None, timeout: Optional[float] = None) -> int:
        q = delete(_cache).where(expired_clause(_cache.c.expires_at))
        if resource_type is not None:
            q = q.where(_cache.c.resource_type == resource_type)
        async with self._session(timeout) as session:
            res = await session.execute(q)
            rows = res.rowcount
            await session.commit()
        logger.info("expired_cache_purged", resource_type=resource_type, rows=rows)
        return rows
