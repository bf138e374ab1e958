"""Async SQLAlchemy engine and schema management for stored documents."""

from __future__ import annotations

from sqlalchemy import MetaData, inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

DOCUMENTS_TABLE = "documents"

# Columns added after the first release of the documents table.
_LATE_COLUMNS: tuple[tuple[str, str], ...] = (
    ("item_count", "INTEGER"),
    ("version", "BIGINT"),
)


class Base(DeclarativeBase):
    """Declarative base shared by the stored document models."""

    metadata = MetaData()


class Database:
    """Owns the async engine and hands out sessions to the document store."""

    def __init__(self, database_url: str):
        self._engine: AsyncEngine = create_async_engine(database_url, future=True)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        """Create the documents table and backfill columns older files lack."""

        from . import db_models  # noqa: F401

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
            await connection.run_sync(self._add_late_columns)

    @staticmethod
    def _add_late_columns(sync_connection: Connection) -> None:
        inspector = inspect(sync_connection)
        if DOCUMENTS_TABLE not in inspector.get_table_names():
            return

        present = {column["name"] for column in inspector.get_columns(DOCUMENTS_TABLE)}
        for name, column_type in _LATE_COLUMNS:
            if name in present:
                continue
            sync_connection.execute(
                text(
                    f"ALTER TABLE {DOCUMENTS_TABLE} "
                    f"ADD COLUMN {name} {column_type} DEFAULT 0"
                )
            )
            sync_connection.execute(
                text(f"UPDATE {DOCUMENTS_TABLE} SET {name} = 0 WHERE {name} IS NULL")
            )

    async def dispose(self) -> None:
        await self._engine.dispose()
