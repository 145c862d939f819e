# src/relstore/auth/repository.py
import uuid
from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import delete, not_, update
from sqlmodel import select

from relstore.errors import Conflict, NotFound
from relstore.expiry import discard_expired, expired_clause
from relstore.filters import Filters, active_only, build_filters, order_clause
from relstore.infrastructure import ids
from relstore.infrastructure.repository import Repository
from relstore.migrations.catalog import AUTH
from relstore.records import as_utc, decode, utcnow

from .models import OneTimeToken, User, UserSession
from .schemas import (
    OneTimeTokenCreate,
    OneTimeTokenRecord,
    SessionCreate,
    SessionRecord,
    UserCreate,
    UserRecord,
    UserUpdate,
)

logger = structlog.get_logger(__name__)

_users = User.__table__
_sessions = UserSession.__table__
_tokens = OneTimeToken.__table__


class UserRepository(Repository):
    module = AUTH
    SEARCH_FIELDS = ("id", "email", "phone_number")
    ORDER_FIELDS = ("created_at", "updated_at")

    async def create(self, user_in: UserCreate, timeout: Optional[float] = None) -> UserRecord:
        now = utcnow()
        user = User(
            id=ids.generate(),
            email=user_in.email,
            phone_number=user_in.phone_number,
            password_hash=user_in.password_hash,
            user_metadata=user_in.metadata,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._session(timeout) as session:
                session.add(user)
                await session.commit()
        except Conflict:
            logger.info("user_create_conflict", email=user_in.email, phone_number=user_in.phone_number)
            raise
        logger.info("user_created", user_id=str(user.id))
        return decode(UserRecord, user)

    async def get_by_id(self, user_id: uuid.UUID, include_deleted: bool = False, timeout: Optional[float] = None) -> Optional[UserRecord]:
        q = select(User).where(User.id == user_id, *active_only(_users, include_deleted))
        async with self._session(timeout) as session:
            res = await session.execute(q)
            user = res.scalar_one_or_none()
        return decode(UserRecord, user) if user else None

    async def get_by_email(self, email: str, timeout: Optional[float] = None) -> Optional[UserRecord]:
        q = select(User).where(User.email == email, *active_only(_users))
        async with self._session(timeout) as session:
            res = await session.execute(q)
            user = res.scalar_one_or_none()
        return decode(UserRecord, user) if user else None

    async def update(self, user_id: uuid.UUID, changes: UserUpdate, timeout: Optional[float] = None) -> UserRecord:
        """
        Apply the fields set on `changes` to an active user. Taking an email or
        phone number held by another active user raises Conflict.
        """
        values = changes.model_dump(exclude_unset=True)
        if "metadata" in values:
            values["user_metadata"] = values.pop("metadata") or {}
        values["updated_at"] = utcnow()
        q = (
            update(User)
            .where(User.id == user_id, *active_only(_users))
            .values(**values)
            .returning(User)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session(timeout) as session:
                res = await session.execute(q)
                user = res.scalar_one_or_none()
                await session.commit()
        except Conflict:
            logger.info("user_update_conflict", user_id=str(user_id))
            raise
        if user is None:
            raise NotFound(f"user {user_id} not found")
        logger.info("user_updated", user_id=str(user_id), fields=sorted(values))
        return decode(UserRecord, user)

    async def delete(self, user_id: uuid.UUID, timeout: Optional[float] = None) -> None:
        await self._soft_delete(User, user_id, timeout)
        logger.info("user_soft_deleted", user_id=str(user_id))

    async def search(
        self,
        filters: Optional[Filters] = None,
        include_deleted: bool = False,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[UserRecord]:
        """
        filters maps id / email / phone_number to candidate values. A field
        matches when any candidate matches (LIKE wildcards allowed), fields are
        ANDed, and unset or empty fields are left out.
        """
        q = select(User).where(*build_filters(_users, filters, self.SEARCH_FIELDS), *active_only(_users, include_deleted))
        ordering = order_clause(_users, order_by, self.ORDER_FIELDS)
        if ordering is not None:
            q = q.order_by(ordering)
        if limit is not None:
            q = q.limit(limit)
        async with self._session(timeout) as session:
            res = await session.execute(q)
            users = res.scalars().all()
        return [decode(UserRecord, u) for u in users]


class SessionRepository(Repository):
    """
    Sessions are hard-deleted: explicitly, or by the first read that finds
    them expired. A read cannot tell "expired" from "never existed".
    """

    module = AUTH
    SEARCH_FIELDS = ("id", "user_id")

    async def create(self, session_in: SessionCreate, timeout: Optional[float] = None) -> SessionRecord:
        row = UserSession(
            id=ids.generate(),
            user_id=session_in.user_id,
            created_at=utcnow(),
            expires_at=session_in.expires_at,
            ip_address=str(session_in.ip_address) if session_in.ip_address else None,
            user_agent=session_in.user_agent,
        )
        async with self._session(timeout) as session:
            session.add(row)
            await session.commit()
        logger.info("session_created", session_id=str(row.id), user_id=str(row.user_id))
        return decode(SessionRecord, row)

    async def get_by_id(self, session_id: uuid.UUID, timeout: Optional[float] = None) -> Optional[SessionRecord]:
        q = select(UserSession, expired_clause(_sessions.c.expires_at).label("expired")).where(UserSession.id == session_id)
        async with self._session(timeout) as session:
            res = await session.execute(q)
            row = res.one_or_none()
            if row is None:
                return None
            found, expired = row
            if expired:
                logger.info("session_expired_on_read", session_id=str(session_id))
                await discard_expired(
                    session,
                    delete(_sessions).where(_sessions.c.id == session_id, expired_clause(_sessions.c.expires_at)),
                    table="session",
                    key=str(session_id),
                )
                return None
        return decode(SessionRecord, found)

    async def list_by_user(self, user_id: uuid.UUID, timeout: Optional[float] = None) -> List[SessionRecord]:
        q = (
            select(UserSession)
            .where(UserSession.user_id == user_id, not_(expired_clause(_sessions.c.expires_at)))
            .order_by(_sessions.c.created_at)
        )
        async with self._session(timeout) as session:
            res = await session.execute(q)
            rows = res.scalars().all()
        return [decode(SessionRecord, r) for r in rows]

    async def search(self, filters: Optional[Filters] = None, limit: Optional[int] = None, timeout: Optional[float] = None) -> List[SessionRecord]:
        """Unexpired sessions matching filters on id / user_id."""
        q = select(UserSession).where(
            *build_filters(_sessions, filters, self.SEARCH_FIELDS),
            not_(expired_clause(_sessions.c.expires_at)),
        )
        if limit is not None:
            q = q.limit(limit)
        async with self._session(timeout) as session:
            res = await session.execute(q)
            rows = res.scalars().all()
        return [decode(SessionRecord, r) for r in rows]

    async def update(self, session_id: uuid.UUID, expires_at: datetime, timeout: Optional[float] = None) -> SessionRecord:
        """Move the expiry of a live session; an expired session cannot be revived."""
        q = (
            update(UserSession)
            .where(UserSession.id == session_id, not_(expired_clause(_sessions.c.expires_at)))
            .values(expires_at=as_utc(expires_at))
            .returning(UserSession)
            .execution_options(synchronize_session=False)
        )
        async with self._session(timeout) as session:
            res = await session.execute(q)
            row = res.scalar_one_or_none()
            await session.commit()
        if row is None:
            raise NotFound(f"session {session_id} not found")
        logger.info("session_extended", session_id=str(session_id))
        return decode(SessionRecord, row)

    async def delete(self, session_id: uuid.UUID, timeout: Optional[float] = None) -> bool:
        """Idempotent; returns whether a row was removed."""
        async with self._session(timeout) as session:
            res = await session.execute(delete(_sessions).where(_sessions.c.id == session_id))
            rows = res.rowcount
            await session.commit()
        logger.info("session_deleted", session_id=str(session_id), rows=rows)
        return rows > 0

    async def delete_by_user(self, user_id: uuid.UUID, timeout: Optional[float] = None) -> int:
        async with self._session(timeout) as session:
            res = await session.execute(delete(_sessions).where(_sessions.c.user_id == user_id))
            rows = res.rowcount
            await session.commit()
        logger.info("sessions_deleted_for_user", user_id=str(user_id), rows=rows)
        return rows

    async def purge_expired(self, timeout: Optional[float] = None) -> int:
        async with self._session(timeout) as session:
            res = await session.execute(delete(_sessions).where(expired_clause(_sessions.c.expires_at)))
            rows = res.rowcount
            await session.commit()
        logger.info("expired_sessions_purged", rows=rows)
        return rows


class OneTimeTokenRepository(Repository):
    """Consumed tokens are soft-deleted and kept for replay detection."""

    module = AUTH
    SEARCH_FIELDS = ("id", "user_id", "token_type")

    async def create(self, token_in: OneTimeTokenCreate, timeout: Optional[float] = None) -> OneTimeTokenRecord:
        token = OneTimeToken(
            id=ids.generate(),
            user_id=token_in.user_id,
            token_type=token_in.token_type,
            token_hash=token_in.token_hash,
            created_at=utcnow(),
            expires_at=token_in.expires_at,
        )
        async with self._session(timeout) as session:
            session.add(token)
            await session.commit()
        logger.info("one_time_token_created", token_id=str(token.id), user_id=str(token.user_id), token_type=token.token_type)
        return decode(OneTimeTokenRecord, token)

    async def get_by_id(self, token_id: uuid.UUID, include_deleted: bool = False, timeout: Optional[float] = None) -> Optional[OneTimeTokenRecord]:
        q = select(OneTimeToken).where(OneTimeToken.id == token_id, *active_only(_tokens, include_deleted))
        async with self._session(timeout) as session:
            res = await session.execute(q)
            token = res.scalar_one_or_none()
        return decode(OneTimeTokenRecord, token) if token else None

    async def get_by_hash(self, token_type: str, token_hash: str, timeout: Optional[float] = None) -> Optional[OneTimeTokenRecord]:
        """The active, unexpired token of this type with this hash."""
        q = select(OneTimeToken).where(
            OneTimeToken.token_type == token_type,
            OneTimeToken.token_hash == token_hash,
            not_(expired_clause(_tokens.c.expires_at)),
            *active_only(_tokens),
        )
        async with self._session(timeout) as session:
            res = await session.execute(q)
            token = res.scalars().first()
        return decode(OneTimeTokenRecord, token) if token else None

    async def update(self, token_id: uuid.UUID, expires_at: datetime, timeout: Optional[float] = None) -> OneTimeTokenRecord:
        q = (
            update(OneTimeToken)
            .where(OneTimeToken.id == token_id, *active_only(_tokens))
            .values(expires_at=as_utc(expires_at))
            .returning(OneTimeToken)
            .execution_options(synchronize_session=False)
        )
        async with self._session(timeout) as session:
            res = await session.execute(q)
            token = res.scalar_one_or_none()
            await session.commit()
        if token is None:
            raise NotFound(f"one_time_token {token_id} not found")
        return decode(OneTimeTokenRecord, token)

    async def delete(self, token_id: uuid.UUID, timeout: Optional[float] = None) -> None:
        await self._soft_delete(OneTimeToken, token_id, timeout)
        logger.info("one_time_token_consumed", token_id=str(token_id))

    async def search(
        self,
        filters: Optional[Filters] = None,
        include_deleted: bool = False,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[OneTimeTokenRecord]:
        q = select(OneTimeToken).where(
            *build_filters(_tokens, filters, self.SEARCH_FIELDS),
            *active_only(_tokens, include_deleted),
        )
        if limit is not None:
            q = q.limit(limit)
        async with self._session(timeout) as session:
            res = await session.execute(q)
            tokens = res.scalars().all()
        return [decode(OneTimeTokenRecord, t) for t in tokens]
