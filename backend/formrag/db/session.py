"""Database engine and session utilities.

Attributes:
    engine (AsyncEngine): Primary SQLModel async engine.
    SessionLocal (async_sessionmaker): Factory for AsyncSession objects used by the SQL stores.

Functions:
    init_db(): Create database tables and apply SQLite pragmas.
    get_session_factory(): Dependency returning the shared session factory.
    is_sqlite(engine): Whether an engine talks to SQLite (single writer).
"""

from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from formrag.core.config import get_settings

_settings = get_settings()

if _settings.database_url.startswith("sqlite+aiosqlite:///") and ":memory:" not in _settings.database_url:
    _db_path = Path(_settings.database_url.replace("sqlite+aiosqlite:///", "")).resolve()
    if _db_path.parent.name:
        _db_path.parent.mkdir(parents=True, exist_ok=True)


engine: AsyncEngine = create_async_engine(
    _settings.database_url,
    echo=False,
    connect_args=(
        {"check_same_thread": False}
        if _settings.database_url.startswith("sqlite")
        else {}
    ),
)

SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def is_sqlite(bind: AsyncEngine) -> bool:
    return bind.dialect.name == "sqlite"


async def init_db(bind: AsyncEngine | None = None) -> None:
    # Import for side effects: registers every table on SQLModel.metadata.
    import formrag.models  # noqa: F401

    target = bind or engine
    async with target.begin() as conn:
        if is_sqlite(target):
            await conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            await conn.exec_driver_sql("PRAGMA synchronous=NORMAL")
        await conn.run_sync(SQLModel.metadata.create_all)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return SessionLocal
