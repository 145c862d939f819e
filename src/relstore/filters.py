# src/relstore/filters.py
import uuid
from typing import Collection, List, Mapping, Optional, Sequence, Union

from sqlalchemy import String, Table, Uuid, cast, or_
from sqlalchemy.sql.elements import ColumnElement

WILDCARDS = ("%", "_")

FilterValue = Union[str, uuid.UUID]
Filters = Mapping[str, Optional[Sequence[FilterValue]]]


def has_wildcard(value: str) -> bool:
    return any(w in value for w in WILDCARDS)


def _match(column, value: FilterValue) -> ColumnElement:
    if isinstance(column.type, Uuid):
        text = str(value)
        if has_wildcard(text):
            return cast(column, String).like(text)
        return column == (value if isinstance(value, uuid.UUID) else uuid.UUID(text))
    return column.like(str(value))


def match_any(column, values: Sequence[FilterValue]) -> ColumnElement:
    """
    column equals any candidate; candidates use LIKE syntax so "abc%" matches
    by prefix. Identifier columns compare exactly unless a wildcard is present.
    """
    return or_(*(_match(column, v) for v in values))


def build_filters(table: Table, filters: Optional[Filters], allowed: Collection[str]) -> List[ColumnElement]:
    """One match_any predicate per populated field; empty fields are dropped."""
    clauses = []
    for name, values in (filters or {}).items():
        if name not in allowed:
            raise ValueError(f"cannot filter on '{name}', expected one of {sorted(allowed)}")
        if not values:
            continue
        clauses.append(match_any(table.c[name], values))
    return clauses


def active_only(table: Table, include_deleted: bool = False) -> List[ColumnElement]:
    """The one place soft-deleted rows are excluded."""
    if include_deleted:
        return []
    return [table.c.deleted_at.is_(None)]


def order_clause(table: Table, order_by: Optional[str], allowed: Collection[str] = ("created_at",)):
    if order_by is None:
        return None
    name = order_by.lstrip("-")
    if name not in allowed:
        raise ValueError(f"cannot order by '{name}', expected one of {sorted(allowed)}")
    column = table.c[name]
    return column.desc() if order_by.startswith("-") else column.asc()
