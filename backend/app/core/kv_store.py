"""
Durable key-value store used by the key registry and the domain blocklist.

Interface (KeyValueStore):
  • get(key)            — value or None
  • put(key, value)     — single upsert
  • put_many(entries)   — several upserts committed together or not at all
  • list(prefix)        — {key: value} for the namespace, ordered by key
  • count(prefix)       — number of keys in the namespace

SqlKeyValueStore backs this with the kv_entries table. Upserts use
INSERT … ON CONFLICT DO UPDATE on Postgres and SQLite; other dialects fall
back to session.merge(). Each call opens its own short-lived session, so a
put_many is exactly one transaction.

Failures (SQLAlchemy errors and raw driver socket errors such as
ConnectionRefusedError) surface as StorageError. Nothing here retries — retry policy
belongs to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.kv_entry import KVEntry

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the backing store cannot be read or written."""


class KeyValueStore(Protocol):
    """Minimal storage contract the registry is written against."""

    async def get(self, key: str) -> Any | None: ...

    async def put(self, key: str, value: Any) -> None: ...

    async def put_many(self, entries: Mapping[str, Any]) -> None: ...

    async def list(self, prefix: str) -> dict[str, Any]: ...

    async def count(self, prefix: str) -> int: ...


def _namespace(key: str) -> str:
    """Namespace part of a key — safe to log (no emails, no raw API keys)."""
    return key.split(":", 1)[0]


class SqlKeyValueStore:
    """KeyValueStore over the kv_entries table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ── Reads ───────────────────────────────────────────────
    async def get(self, key: str) -> Any | None:
        stmt = select(KVEntry.value).where(KVEntry.key == key)
        try:
            async with self._session_factory() as session:
                return await session.scalar(stmt)
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("KV read failed (namespace=%s)", _namespace(key))
            raise StorageError("Storage read failed") from exc

    async def list(self, prefix: str) -> dict[str, Any]:
        stmt = (
            select(KVEntry.key, KVEntry.value)
            .where(KVEntry.key.startswith(prefix, autoescape=True))
            .order_by(KVEntry.key.asc())
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).all()
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("KV scan failed (prefix=%s)", prefix)
            raise StorageError("Storage scan failed") from exc
        return {row.key: row.value for row in rows}

    async def count(self, prefix: str) -> int:
        stmt = (
            select(func.count())
            .select_from(KVEntry)
            .where(KVEntry.key.startswith(prefix, autoescape=True))
        )
        try:
            async with self._session_factory() as session:
                return int(await session.scalar(stmt) or 0)
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("KV count failed (prefix=%s)", prefix)
            raise StorageError("Storage count failed") from exc

    # ── Writes ──────────────────────────────────────────────
    async def put(self, key: str, value: Any) -> None:
        await self.put_many({key: value})

    async def put_many(self, entries: Mapping[str, Any]) -> None:
        """Upsert every entry in one transaction; roll back on any failure."""
        if not entries:
            return
        async with self._session_factory() as session:
            try:
                for key, value in entries.items():
                    await self._upsert(session, key, value)
                await session.commit()
            except (SQLAlchemyError, OSError) as exc:
                await session.rollback()
                logger.exception(
                    "KV commit failed, rolled back %d entries (namespaces=%s)",
                    len(entries),
                    sorted({_namespace(k) for k in entries}),
                )
                raise StorageError("Storage write failed") from exc

    async def _upsert(self, session: AsyncSession, key: str, value: Any) -> None:
        dialect = session.get_bind().dialect.name

        if dialect == "postgresql":
            insert = pg_insert
        elif dialect == "sqlite":
            insert = sqlite_insert
        else:
            await session.merge(KVEntry(key=key, value=value))
            return

        stmt = insert(KVEntry).values(key=key, value=value)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={"value": stmt.excluded.value, "updated_at": func.now()},
        )
        await session.execute(stmt)
