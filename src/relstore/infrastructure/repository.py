# src/relstore/infrastructure/repository.py
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import func, select, update
from sqlmodel.ext.asyncio.session import AsyncSession

from relstore.errors import NotFound
from relstore.migrations.catalog import MigrationCatalog
from relstore.migrations.engine import default_catalog

from .database import Database


class Repository:
    """
    Base for the entity repositories.

    Holds the pool handle, not a session: each operation checks out its own
    session for exactly one unit of work. The schema of the owning module is
    verified once per Database before the first operation.
    """

    module: str

    def __init__(self, db: Database, catalog: Optional[MigrationCatalog] = None):
        self.db = db
        self.expected_version = (catalog or default_catalog()).latest(self.module)

    @asynccontextmanager
    async def _session(self, timeout: Optional[float] = None) -> AsyncIterator[AsyncSession]:
        async with self.db.session(timeout) as session:
            # one deadline for the schema check and the work
            await self.db.verify_schema(await session.connection(), self.module, self.expected_version)
            yield session

    async def _soft_delete(self, model, ident: uuid.UUID, timeout: Optional[float] = None) -> None:
        """Stamp deleted_at once; deleting an already deleted row changes nothing."""
        table = model.__table__
        q = update(table).where(table.c.id == ident, table.c.deleted_at.is_(None)).values(deleted_at=func.now())
        async with self._session(timeout) as session:
            res = await session.execute(q)
            if res.rowcount == 0:
                found = await session.execute(select(table.c.id).where(table.c.id == ident))
                if found.scalar_one_or_none() is None:
                    raise NotFound(f"{table.name} {ident} not found")
            await session.commit()
