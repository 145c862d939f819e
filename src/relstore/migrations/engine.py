# src/relstore/migrations/engine.py
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

import structlog
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import Dialect
from structlog.contextvars import bound_contextvars

from relstore.errors import MigrationFailed

from . import auth, cache, registry
from .catalog import Migration, MigrationCatalog

logger = structlog.get_logger(__name__)


def default_catalog() -> MigrationCatalog:
    return MigrationCatalog([*auth.MIGRATIONS, *cache.MIGRATIONS])


@dataclass
class MigrationResult:
    module: str
    applied: List[date] = field(default_factory=list)
    version: Optional[date] = None


def _compile(stmt, dialect: Dialect, literal: bool = False) -> str:
    compiled = stmt.compile(dialect=dialect, compile_kwargs={"literal_binds": literal})
    return str(compiled).strip() + ";"


class MigrationEngine:
    """
    Plans, renders and applies the catalog for one module at a time.

    apply() commits every step in its own transaction together with the
    module_version bump, so a failure leaves the registry at the last step
    that made it and a rerun resumes from there.
    """

    def __init__(self, catalog: Optional[MigrationCatalog] = None):
        self.catalog = catalog or default_catalog()

    def plan(self, module: str, installed: Optional[date]) -> List[Migration]:
        return self.catalog.plan(module, installed)

    def render(self, module: str, installed: Optional[date] = None, dialect: Optional[Dialect] = None) -> str:
        dialect = dialect or postgresql.dialect()
        pending = self.plan(module, installed)
        if not pending:
            return ""
        lines = [_compile(registry.create_table(), dialect)]
        for migration in pending:
            lines.append(f"-- {module} {migration.tag.isoformat()} {migration.name}")
            lines.extend(_compile(stmt, dialect) for stmt in migration.statements)
            lines.append(_compile(registry.version_upsert(module, migration.tag, dialect.name), dialect, literal=True))
        return "\n".join(lines) + "\n"

    async def installed(self, module: str, db, timeout: Optional[float] = None) -> Optional[date]:
        async with db.transaction(timeout) as conn:
            return await registry.current_version(conn, module)

    async def pending(self, module: str, db, timeout: Optional[float] = None) -> List[Migration]:
        return self.plan(module, await self.installed(module, db, timeout))

    async def apply(self, module: str, db, timeout: Optional[float] = None) -> MigrationResult:
        with bound_contextvars(module=module):
            installed = await self.installed(module, db, timeout)
            result = MigrationResult(module=module, version=installed)
            pending = self.plan(module, installed)
            if not pending:
                logger.info("migrations_up_to_date", version=str(installed))
                return result

            for migration in pending:
                try:
                    async with db.transaction(timeout) as conn:
                        for stmt in migration.statements:
                            await conn.execute(stmt)
                        await registry.set_version(conn, module, migration.tag)
                except Exception as e:
                    logger.error(
                        "migration_failed",
                        tag=str(migration.tag),
                        name=migration.name,
                        last_applied=str(result.version),
                        error=str(e),
                    )
                    raise MigrationFailed(module, result.version, migration.tag) from e
                result.applied.append(migration.tag)
                result.version = migration.tag
                logger.info("migration_applied", tag=str(migration.tag), name=migration.name)
            return result
