# src/relstore/migrations/catalog.py
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.sql.base import Executable

from relstore.errors import MigrationConflict

AUTH = "auth"
CACHE = "cache"
MODULES = (AUTH, CACHE)


@dataclass(frozen=True)
class Migration:
    module: str
    tag: date
    name: str
    statements: Tuple[Executable, ...]


class MigrationCatalog:
    """
    Ordered, date-tagged migrations per module.

    Steps must be registered in strictly ascending tag order; a duplicate or
    out-of-order tag is a MigrationConflict raised at registration, the catalog
    never reorders anything on its own.
    """

    def __init__(self, migrations: Iterable[Migration] = ()):
        self._steps: Dict[str, List[Migration]] = {}
        for migration in migrations:
            self.register(migration)

    def register(self, migration: Migration) -> None:
        steps = self._steps.setdefault(migration.module, [])
        if steps and migration.tag <= steps[-1].tag:
            kind = "duplicate" if migration.tag == steps[-1].tag else "out-of-order"
            raise MigrationConflict(
                f"{kind} migration tag {migration.tag} ({migration.name}) for module "
                f"'{migration.module}', previous is {steps[-1].tag} ({steps[-1].name})"
            )
        steps.append(migration)

    @property
    def modules(self) -> List[str]:
        return list(self._steps)

    def migrations(self, module: str) -> List[Migration]:
        if module not in self._steps:
            raise ValueError(f"unknown module '{module}'")
        return list(self._steps[module])

    def latest(self, module: str) -> date:
        return self.migrations(module)[-1].tag

    def plan(self, module: str, installed: Optional[date]) -> List[Migration]:
        steps = self.migrations(module)
        if installed is None:
            return steps
        return [m for m in steps if m.tag > installed]
