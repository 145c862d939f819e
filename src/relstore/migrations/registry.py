# src/relstore/migrations/registry.py
from datetime import date
from typing import Optional

from sqlalchemy import Column, Date, MetaData, String, Table, inspect, select
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.schema import CreateTable

from relstore.infrastructure.ddl import upsert

metadata = MetaData()

module_version = Table(
    "module_version",
    metadata,
    Column("module", String, primary_key=True),
    Column("version", Date, nullable=False),
)


def _has_table(sync_conn) -> bool:
    return inspect(sync_conn).has_table(module_version.name)


def create_table() -> CreateTable:
    return CreateTable(module_version, if_not_exists=True)


def version_upsert(module: str, tag: date, dialect_name: str):
    # the WHERE keeps the stored version from ever moving backward
    stmt = upsert(module_version, dialect_name).values(module=module, version=tag)
    return stmt.on_conflict_do_update(
        index_elements=[module_version.c.module],
        set_={"version": stmt.excluded.version},
        where=module_version.c.version < stmt.excluded.version,
    )


async def current_version(conn: AsyncConnection, module: str) -> Optional[date]:
    """Installed version of a module, None when it was never migrated."""
    if not await conn.run_sync(_has_table):
        return None
    res = await conn.execute(select(module_version.c.version).where(module_version.c.module == module))
    return res.scalar_one_or_none()


async def set_version(conn: AsyncConnection, module: str, tag: date) -> None:
    await conn.execute(create_table())
    await conn.execute(version_upsert(module, tag, conn.dialect.name))
