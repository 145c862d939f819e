# src/relstore/infrastructure/database.py
import asyncio
import os
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Awaitable, Optional, Set, TypeVar

import structlog
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlmodel.ext.asyncio.session import AsyncSession

from relstore.errors import Conflict, ConnectivityFailure, DeadlineExceeded, DecodeFailure, SchemaMismatch
from relstore.migrations import registry

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+asyncpg://localhost:5432/relstore")
STATEMENT_TIMEOUT = float(os.getenv("RELSTORE_STATEMENT_TIMEOUT", "30"))
POOL_SIZE = int(os.getenv("RELSTORE_POOL_SIZE", "10"))
POOL_TIMEOUT = float(os.getenv("RELSTORE_POOL_TIMEOUT", "30"))


def create_engine(url: Optional[str] = None, **kwargs) -> AsyncEngine:
    url = url or DATABASE_URL
    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_size", POOL_SIZE)
        kwargs.setdefault("pool_timeout", POOL_TIMEOUT)
        kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, echo=False, **kwargs)


def _is_unique_violation(exc: sa_exc.IntegrityError) -> bool:
    orig = exc.orig
    if getattr(orig, "sqlstate", None) == "23505" or getattr(orig, "pgcode", None) == "23505":
        return True
    message = str(orig)
    return "UNIQUE constraint failed" in message or "duplicate key value" in message


class Database:
    """
    Handle around the shared connection pool (one AsyncEngine).

    Every unit of work goes through session() or transaction(): the connection
    is checked out for the duration of the block only, the caller deadline is
    enforced on the whole block, and driver errors leave as StoreError kinds.
    """

    def __init__(self, engine: AsyncEngine, timeout: Optional[float] = STATEMENT_TIMEOUT):
        self.engine = engine
        self.timeout = timeout
        self._verified: Set[str] = set()

    @classmethod
    def from_url(cls, url: Optional[str] = None, timeout: Optional[float] = STATEMENT_TIMEOUT, **engine_kwargs) -> "Database":
        return cls(create_engine(url, **engine_kwargs), timeout=timeout)

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def _guard(self, timeout: Optional[float]) -> AsyncIterator[None]:
        deadline = self.timeout if timeout is None else timeout
        try:
            async with asyncio.timeout(deadline):
                yield
        except TimeoutError as e:
            logger.warning("deadline_exceeded", timeout=deadline)
            raise DeadlineExceeded(f"operation exceeded deadline of {deadline}s") from e
        except sa_exc.IntegrityError as e:
            if _is_unique_violation(e):
                raise Conflict(str(e.orig)) from e
            raise
        except (sa_exc.TimeoutError, sa_exc.InterfaceError, OSError) as e:
            logger.warning("database_unreachable", error=str(e))
            raise ConnectivityFailure(str(e)) from e
        except sa_exc.DBAPIError as e:
            if e.connection_invalidated:
                logger.warning("database_connection_lost", error=str(e))
                raise ConnectivityFailure(str(e)) from e
            raise
        except ValueError as e:
            # raised by result processors, e.g. a JSON column holding invalid text
            logger.error("row_decode_failed", error=str(e))
            raise DecodeFailure(f"stored value does not decode: {e}") from e

    async def _connect(self, checkout: Awaitable[T]) -> T:
        try:
            return await checkout
        except sa_exc.DBAPIError as e:
            logger.warning("database_unreachable", error=str(e))
            raise ConnectivityFailure(str(e)) from e

    @asynccontextmanager
    async def session(self, timeout: Optional[float] = None) -> AsyncIterator[AsyncSession]:
        async with self._guard(timeout):
            async with AsyncSession(self.engine, expire_on_commit=False) as session:
                await self._connect(session.connection())
                yield session

    @asynccontextmanager
    async def transaction(self, timeout: Optional[float] = None) -> AsyncIterator[AsyncConnection]:
        """Connection inside BEGIN; commits when the block exits cleanly."""
        async with self._guard(timeout):
            conn = await self._connect(self.engine.connect())
            try:
                async with conn.begin():
                    yield conn
            finally:
                await conn.close()

    async def require_schema(self, module: str, expected: date, timeout: Optional[float] = None) -> None:
        if module in self._verified:
            return
        async with self.transaction(timeout) as conn:
            await self.verify_schema(conn, module, expected)

    async def verify_schema(self, conn: AsyncConnection, module: str, expected: date) -> None:
        """require_schema on a connection the caller already holds."""
        if module in self._verified:
            return
        installed = await registry.current_version(conn, module)
        if installed is None or installed < expected:
            logger.error("schema_mismatch", module=module, installed=str(installed), expected=str(expected))
            raise SchemaMismatch(module, installed, expected)
        self._verified.add(module)
