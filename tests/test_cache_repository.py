from datetime import timedelta

import pytest
from sqlalchemy import text, update

from relstore import records
from relstore.cache import repository as cache_module
from relstore.cache.models import CacheEntry
from relstore.errors import DecodeFailure
from relstore.records import utcnow

from conftest import count_rows

_cache = CacheEntry.__table__


async def backdate(db, resource_type, *keys):
    """Push the expiry of existing entries an hour into the past."""
    async with db.session() as session:
        await session.execute(
            update(_cache)
            .where(_cache.c.resource_type == resource_type, _cache.c.key.in_(keys))
            .values(expires_at=utcnow() - timedelta(hours=1))
        )
        await session.commit()


async def test_set_then_get(cache):
    await cache.set("profile", "u1", {"name": "Ada", "tags": ["x"]}, ttl=60)
    entry = await cache.get("profile", "u1")
    assert entry.value == {"name": "Ada", "tags": ["x"]}
    assert entry.expires_at > entry.created_at


async def test_expiry_is_computed_on_the_database_clock(cache, monkeypatch):
    monkeypatch.setattr(records, "utcnow", lambda: utcnow() - timedelta(minutes=2))

    await cache.set("t", "k", "v", ttl=60)
    entry = await cache.get("t", "k")

    assert entry.value == "v"
    assert timedelta(seconds=59) <= entry.expires_at - entry.created_at <= timedelta(seconds=61)


async def test_missing_entry_is_none(cache):
    assert await cache.get("profile", "nobody") is None


async def test_overwrite_keeps_only_last_value(cache, migrated_db):
    await cache.set("t", "k", {"v": 1})
    await cache.set("t", "k", {"v": 2})

    assert (await cache.get("t", "k")).value == {"v": 2}
    assert await count_rows(migrated_db, _cache, _cache.c.resource_type == "t") == 1


async def test_key_is_scoped_by_resource_type(cache):
    await cache.set("a", "k", 1)
    await cache.set("b", "k", 2)
    assert (await cache.get("a", "k")).value == 1
    assert (await cache.get("b", "k")).value == 2


async def test_entry_without_ttl_never_expires(cache):
    await cache.set("t", "forever", "value")
    entry = await cache.get("t", "forever")
    assert entry.expires_at is None
    assert await cache.purge_expired() == 0


async def test_expired_entry_reads_as_missing_and_is_deleted(cache, migrated_db):
    await cache.set("t", "stale", {"v": 1}, ttl=timedelta(minutes=5))
    await backdate(migrated_db, "t", "stale")

    assert await cache.get("t", "stale") is None
    assert await count_rows(migrated_db, _cache, _cache.c.key == "stale") == 0


async def test_value_written_during_expired_read_survives(cache, migrated_db, monkeypatch):
    await cache.set("t", "k", "stale", ttl=60)
    await backdate(migrated_db, "t", "k")
    cleanup = cache_module.discard_expired

    async def rewrite_then_cleanup(session, stmt, **context):
        await cache.set("t", "k", "fresh", ttl=3600)
        await cleanup(session, stmt, **context)

    monkeypatch.setattr(cache_module, "discard_expired", rewrite_then_cleanup)
    assert await cache.get("t", "k") is None
    monkeypatch.undo()

    assert (await cache.get("t", "k")).value == "fresh"


async def test_overwrite_refreshes_expiry(cache, migrated_db):
    await cache.set("t", "k", "old", ttl=60)
    await backdate(migrated_db, "t", "k")
    await cache.set("t", "k", "new", ttl=60)

    assert (await cache.get("t", "k")).value == "new"


async def test_malformed_stored_document_is_a_decode_failure(cache, migrated_db):
    await cache.set("t", "k", {"v": 1})
    async with migrated_db.session() as session:
        await session.execute(text("UPDATE cache SET value = '{not json' WHERE key = 'k'"))
        await session.commit()

    with pytest.raises(DecodeFailure):
        await cache.get("t", "k")


async def test_non_positive_ttl_is_rejected(cache):
    with pytest.raises(ValueError):
        await cache.set("t", "k", 1, ttl=0)


async def test_delete_and_delete_resource(cache):
    await cache.set("t", "a", 1)
    await cache.set("t", "b", 2)
    await cache.set("u", "a", 3)

    assert await cache.delete("t", "a") is True
    assert await cache.delete("t", "a") is False
    assert await cache.delete_resource("t") == 1
    assert (await cache.get("u", "a")).value == 3


async def test_purge_expired_by_resource_type(cache, migrated_db):
    await cache.set("t", "old1", 1, ttl=60)
    await cache.set("u", "old2", 2, ttl=60)
    await cache.set("t", "fresh", 3, ttl=60)
    await backdate(migrated_db, "t", "old1")
    await backdate(migrated_db, "u", "old2")

    assert await cache.purge_expired("t") == 1
    assert await cache.purge_expired() == 1
    assert (await cache.get("t", "fresh")).value == 3
