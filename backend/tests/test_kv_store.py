"""Tests for SqlKeyValueStore against an in-memory SQLite database."""
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.core.kv_store import SqlKeyValueStore, StorageError
from app.models.kv_entry import KVEntry
from app.services.key_registry import KeyRegistry


async def _make_store():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    return engine, factory, SqlKeyValueStore(factory)


class TestSqlKeyValueStore:
    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self):
        engine, _, store = await _make_store()
        try:
            assert await store.get("key:nobody@x.com") is None
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_put_then_overwrite(self):
        engine, _, store = await _make_store()
        try:
            await store.put("key:a@x.com", {"email": "a@x.com", "requests_today": 1})
            await store.put("key:a@x.com", {"email": "a@x.com", "requests_today": 2})

            assert await store.get("key:a@x.com") == {"email": "a@x.com", "requests_today": 2}
            assert await store.count("key:") == 1
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_scalar_values(self):
        engine, _, store = await _make_store()
        try:
            await store.put_many({"global:totalEmailsChecked": 42, "lookup:dk_live_x": "a@x.com"})
            assert await store.get("global:totalEmailsChecked") == 42
            assert await store.get("lookup:dk_live_x") == "a@x.com"
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_list_is_scoped_and_ordered(self):
        engine, _, store = await _make_store()
        try:
            await store.put_many({
                "key:b@x.com": {"n": 2},
                "key:a@x.com": {"n": 1},
                "lookup:dk_live_a": "a@x.com",
            })
            listed = await store.list("key:")
            assert list(listed) == ["key:a@x.com", "key:b@x.com"]
            assert listed["key:a@x.com"] == {"n": 1}
            assert await store.count("lookup:") == 1
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_prefix_wildcards_are_literal(self):
        engine, _, store = await _make_store()
        try:
            await store.put_many({"key:a_b": 1, "key:axb": 2, "key%:z": 3})
            assert list(await store.list("key:a_")) == ["key:a_b"]
            assert await store.count("key%") == 1
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_failed_batch_writes_nothing(self):
        engine, _, store = await _make_store()
        try:
            await store.put("global:totalEmailsChecked", 1)

            with pytest.raises(StorageError):
                await store.put_many({
                    "global:totalEmailsChecked": 2,
                    "key:a@x.com": {"unserializable": object()},
                })

            assert await store.get("global:totalEmailsChecked") == 1
            assert await store.get("key:a@x.com") is None
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_empty_batch_is_noop(self):
        engine, factory, store = await _make_store()
        try:
            await store.put_many({})
            async with factory() as session:
                assert (await session.execute(select(KVEntry))).first() is None
        finally:
            await engine.dispose()


class TestRegistryOverSql:
    @pytest.mark.asyncio
    async def test_key_lifecycle(self, clock):
        engine, _, store = await _make_store()
        try:
            registry = KeyRegistry(store, clock=clock)
            created = await registry.create_key("a@x.com")
            again = await registry.create_key("a@x.com")
            assert again.api_key == created.api_key

            await registry.update_daily_limit("a@x.com", 2)
            assert (await registry.validate_and_increment(created.api_key)).remaining == 1
            assert (await registry.validate_and_increment(created.api_key)).remaining == 0
            assert (await registry.validate_and_increment(created.api_key)).valid is False

            clock.advance(days=1)
            assert (await registry.validate_and_increment(created.api_key)).remaining == 1

            account = await registry.get_account_by_email("a@x.com")
            assert account.total_usage == 3
            assert account.custom_daily_limit == 2

            stats = await registry.get_global_stats()
            assert stats.total_emails_checked == 3
            assert stats.total_api_keys == 1
            assert await store.get(f"lookup:{created.api_key}") == "a@x.com"
        finally:
            await engine.dispose()


def _unreachable_factory(session):
    """Session factory whose sessions hit a dead database socket."""
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return factory


class TestConnectionFailures:
    @pytest.mark.asyncio
    async def test_read_socket_error_is_storage_error(self):
        session = AsyncMock()
        session.scalar.side_effect = ConnectionRefusedError("connection refused")
        store = SqlKeyValueStore(_unreachable_factory(session))

        with pytest.raises(StorageError):
            await store.get("key:a@x.com")

    @pytest.mark.asyncio
    async def test_write_socket_error_rolls_back(self):
        session = AsyncMock()
        bind = MagicMock()
        bind.dialect.name = "sqlite"
        session.get_bind = MagicMock(return_value=bind)
        session.execute.side_effect = OSError("network unreachable")
        store = SqlKeyValueStore(_unreachable_factory(session))

        with pytest.raises(StorageError):
            await store.put("global:totalEmailsChecked", 1)

        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()
