"""
Database engine and session management.

Provides async SQLAlchemy engine and session factory for FastAPI, plus the
SQLite FTS5 index used by card search.
"""

from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from magicodex.config import settings
from magicodex.models.db import Base

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

# Session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

SEARCH_INDEX_TABLE = "cards_fts"

_INDEXED_COLUMNS = (
    "name",
    "name_localized",
    "type_line",
    "type_line_localized",
    "oracle_text",
    "oracle_text_localized",
)
_COLUMN_LIST = ", ".join(_INDEXED_COLUMNS)
_NEW_VALUES = ", ".join(f"new.{column}" for column in _INDEXED_COLUMNS)

# Inverted index over the searchable card text, kept in step by triggers
SQLITE_SEARCH_INDEX_DDL = (
    f"CREATE VIRTUAL TABLE IF NOT EXISTS {SEARCH_INDEX_TABLE} USING fts5("
    f"card_id UNINDEXED, {_COLUMN_LIST}, tokenize = 'unicode61 remove_diacritics 2')",
    f"CREATE TRIGGER IF NOT EXISTS cards_fts_ai AFTER INSERT ON cards BEGIN "
    f"INSERT INTO {SEARCH_INDEX_TABLE} (card_id, {_COLUMN_LIST}) VALUES (new.id, {_NEW_VALUES}); "
    f"END",
    f"CREATE TRIGGER IF NOT EXISTS cards_fts_ad AFTER DELETE ON cards BEGIN "
    f"DELETE FROM {SEARCH_INDEX_TABLE} WHERE card_id = old.id; "
    f"END",
    f"CREATE TRIGGER IF NOT EXISTS cards_fts_au AFTER UPDATE ON cards BEGIN "
    f"DELETE FROM {SEARCH_INDEX_TABLE} WHERE card_id = old.id; "
    f"INSERT INTO {SEARCH_INDEX_TABLE} (card_id, {_COLUMN_LIST}) VALUES (new.id, {_NEW_VALUES}); "
    f"END",
)

SQLITE_SEARCH_INDEX_REBUILD = (
    f"DELETE FROM {SEARCH_INDEX_TABLE}",
    f"INSERT INTO {SEARCH_INDEX_TABLE} (card_id, {_COLUMN_LIST}) "
    f"SELECT id, {_COLUMN_LIST} FROM cards",
)


def is_sqlite_url(database_url: str) -> bool:
    return database_url.startswith("sqlite")


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Usage in FastAPI:
        @app.get("/items")
        async def get_items(session: AsyncSession = Depends(get_session)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            raise


async def create_search_index(conn: AsyncConnection) -> None:
    """Create the FTS5 table and its triggers. SQLite only."""
    for statement in SQLITE_SEARCH_INDEX_DDL:
        await conn.execute(text(statement))


async def init_db() -> None:
    """
    Initialize database tables.

    Creates all tables defined in the ORM models, and the full-text index
    when running on SQLite. Should be called once at application startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if conn.dialect.name == "sqlite":
            await create_search_index(conn)


async def drop_db() -> None:
    """
    Drop all database tables.

    WARNING: Destroys all data. Use only for testing.
    """
    async with engine.begin() as conn:
        if conn.dialect.name == "sqlite":
            await conn.execute(text(f"DROP TABLE IF EXISTS {SEARCH_INDEX_TABLE}"))
        await conn.run_sync(Base.metadata.drop_all)
