"""Code stores: where issued batch codes live.

A store hands out an *atomic scope* per group key. Inside the scope the
allocator may ``find`` the codes already issued for the key and ``append``
exactly one new code; nothing becomes visible to other scopes until the
scope exits cleanly, and two scopes for the same key never interleave.
"""
from __future__ import annotations

import asyncio
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Iterable, Protocol

from sqlalchemy import select, text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from batch_code_core.errors import StoreError, UniquenessViolation
from batch_code_core.models import BatchCode, BatchCodeLock

# serialization_failure, deadlock_detected, lock_not_available
RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}


class CodeStoreScope(Protocol):
    async def find(self, prefix: str) -> list[str]: ...

    async def append(self, code: str) -> None: ...


class CodeStore(Protocol):
    def atomic(self, group_key: str) -> AbstractAsyncContextManager[CodeStoreScope]: ...


class _InMemoryScope:
    def __init__(self, committed: set[str]):
        self._committed = committed
        self.staged: list[str] = []

    async def find(self, prefix: str) -> list[str]:
        matches = [c for c in self._committed if c.startswith(prefix)]
        matches.extend(c for c in self.staged if c.startswith(prefix))
        return sorted(matches)

    async def append(self, code: str) -> None:
        if code in self._committed or code in self.staged:
            raise UniquenessViolation(code)
        self.staged.append(code)


class InMemoryCodeStore:
    """Process-local store.

    One ``asyncio.Lock`` per group key, kept only while some scope holds or
    waits on it.
    """

    def __init__(self, codes: Iterable[str] = ()):
        self._codes: set[str] = set(codes)
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @property
    def codes(self) -> list[str]:
        return sorted(self._codes)

    @asynccontextmanager
    async def atomic(self, group_key: str) -> AsyncIterator[_InMemoryScope]:
        lock = self._locks.setdefault(group_key, asyncio.Lock())
        self._lock_users[group_key] = self._lock_users.get(group_key, 0) + 1
        try:
            async with lock:
                scope = _InMemoryScope(self._codes)
                yield scope
                # only reached when the body finished without raising
                self._codes.update(scope.staged)
        finally:
            self._lock_users[group_key] -= 1
            if not self._lock_users[group_key]:
                del self._lock_users[group_key]
                del self._locks[group_key]


def _is_transient(e: DBAPIError) -> bool:
    if e.connection_invalidated or isinstance(e, OperationalError):
        return True
    orig = getattr(e, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return sqlstate in RETRYABLE_SQLSTATES


class _SqlScope:
    def __init__(self, session: AsyncSession, group_key: str):
        self._session = session
        self._group_key = group_key

    async def find(self, prefix: str) -> list[str]:
        rows = (await self._session.execute(
            select(BatchCode.code)
            .where(BatchCode.code.startswith(prefix, autoescape=True))
            .order_by(BatchCode.code.asc())
        )).scalars().all()
        return list(rows)

    async def append(self, code: str) -> None:
        self._session.add(BatchCode(code=code, group_key=self._group_key))
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise UniquenessViolation(code) from e


async def _lock_group(session: AsyncSession, group_key: str) -> None:
    # Make sure the lock row exists, then hold it until the transaction ends.
    await session.execute(
        text("""
        INSERT INTO batch_code_locks(group_key)
        VALUES (:k)
        ON CONFLICT (group_key) DO NOTHING
        """),
        {"k": group_key},
    )
    await session.execute(
        select(BatchCodeLock.group_key)
        .where(BatchCodeLock.group_key == group_key)
        .with_for_update()
    )


class SqlCodeStore:
    """Codes persisted in ``batch_codes``, serialized per group key by a row lock.

    Built from a sessionmaker, every scope runs in its own transaction and is
    committed on exit. Built with :meth:`joined`, scopes run in a SAVEPOINT of
    the caller's session, so the code is committed together with whatever the
    caller writes next; the row lock is held until the caller commits.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession] | None = None,
                 *, session: AsyncSession | None = None):
        if (sessionmaker is None) == (session is None):
            raise ValueError("SqlCodeStore needs exactly one of sessionmaker or session")
        self._sessionmaker = sessionmaker
        self._session = session

    @classmethod
    def joined(cls, session: AsyncSession) -> "SqlCodeStore":
        return cls(session=session)

    @asynccontextmanager
    async def atomic(self, group_key: str) -> AsyncIterator[_SqlScope]:
        try:
            if self._session is not None:
                async with self._session.begin_nested():
                    await _lock_group(self._session, group_key)
                    yield _SqlScope(self._session, group_key)
            else:
                async with self._sessionmaker() as session:
                    async with session.begin():
                        await _lock_group(session, group_key)
                        yield _SqlScope(session, group_key)
        except IntegrityError as e:
            # surfaced at commit rather than at flush
            raise UniquenessViolation(group_key) from e
        except PoolTimeoutError as e:
            raise StoreError(f"Timed out waiting for a database connection: {e}", transient=True) from e
        except DBAPIError as e:
            raise StoreError(f"Database error while allocating {group_key}: {e}", transient=_is_transient(e)) from e
        except SQLAlchemyError as e:
            raise StoreError(f"Database error while allocating {group_key}: {e}") from e
