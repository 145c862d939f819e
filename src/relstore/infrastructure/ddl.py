# src/relstore/infrastructure/ddl.py
from sqlalchemy import JSON, DateTime, String, Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.schema import CreateTable

# column types shared by the models and the migration snapshots
Document = JSON().with_variant(postgresql.JSONB(), "postgresql")
InetAddress = String().with_variant(postgresql.INET(), "postgresql")
Timestamp = DateTime(timezone=True)


@compiles(CreateTable, "postgresql")
def _create_table_postgresql(element, compiler, **kw):
    # Table(..., info={"unlogged": True}) skips the WAL on postgres
    text = compiler.visit_create_table(element, **kw)
    if element.element.info.get("unlogged"):
        text = text.replace("CREATE TABLE", "CREATE UNLOGGED TABLE", 1)
    return text


def upsert(table: Table, dialect_name: str):
    """Dialect insert construct exposing on_conflict_do_update / excluded."""
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"upsert not supported on dialect {dialect_name}")
