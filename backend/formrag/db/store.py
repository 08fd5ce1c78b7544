"""Shared plumbing for the SQL-backed stores.

Classes:
    SQLStore: Opens one short-lived session per operation and serialises writes on SQLite.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, nullcontext
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from formrag.db.session import is_sqlite

# SQLite allows one writer per database file; keyed by URL so every store on a file shares it.
_SQLITE_WRITE_LOCKS: dict[str, asyncio.Lock] = {}


def _write_lock_for(bind: Optional[AsyncEngine]) -> Optional[asyncio.Lock]:
    if bind is None or not is_sqlite(bind):
        return None
    key = bind.url.render_as_string(hide_password=False)
    return _SQLITE_WRITE_LOCKS.setdefault(key, asyncio.Lock())


class SQLStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._write_lock = _write_lock_for(session_factory.kw.get("bind"))

    @asynccontextmanager
    async def _reader(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            yield session

    @asynccontextmanager
    async def _writer(self) -> AsyncIterator[AsyncSession]:
        guard = self._write_lock if self._write_lock is not None else nullcontext()
        async with guard:
            async with self._session_factory() as session:
                yield session
