"""Database connection and session management."""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from knowledge_hub.config import settings


def _set_sqlite_pragma(dbapi_conn, connection_record):
    """Set SQLite pragmas for concurrency and referential integrity.

    WAL mode allows concurrent reads during writes; foreign keys are off by
    default in SQLite and the version/resolution links rely on them.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, echo: bool = False, **engine_kwargs) -> AsyncEngine:
    """Create an async engine, applying SQLite pragmas when relevant."""
    engine = create_async_engine(database_url, echo=echo, **engine_kwargs)
    if database_url.startswith("sqlite"):
        event.listen(engine.sync_engine, "connect", _set_sqlite_pragma)
    return engine


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

async_session_maker = build_session_maker(engine)


async def init_db(target: AsyncEngine | None = None) -> None:
    """Initialize database and create all tables."""
    from knowledge_hub.db.models import Base

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
