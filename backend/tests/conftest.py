"""Shared fixtures: in-memory store, controllable clock, registry, API client."""
import asyncio
import copy
import os
from datetime import datetime, timedelta, timezone

# Settings are read at import time, so configure them before any app import.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ADMIN_API_SECRET", "test-admin-secret")
os.environ.setdefault("TURNSTILE_SECRET_KEY", "test-turnstile-secret")
os.environ.setdefault("RESEND_API_KEY", "test-resend-key")

import pytest

from app.services.domain_list import DomainBlocklist
from app.services.key_registry import KeyRegistry

ADMIN_SECRET = os.environ["ADMIN_API_SECRET"]
START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class MemoryKeyValueStore:
    """Dict-backed KeyValueStore. Values are deep-copied in and out like JSON.

    With yield_control=True every call awaits once, so concurrent callers
    actually interleave between storage operations.
    """

    def __init__(self, yield_control=False):
        self.data = {}
        self.yield_control = yield_control

    async def _pause(self):
        if self.yield_control:
            await asyncio.sleep(0)

    async def get(self, key):
        await self._pause()
        return copy.deepcopy(self.data.get(key))

    async def put(self, key, value):
        await self.put_many({key: value})

    async def put_many(self, entries):
        await self._pause()
        self.data.update(copy.deepcopy(dict(entries)))

    async def list(self, prefix):
        await self._pause()
        return {k: copy.deepcopy(self.data[k]) for k in sorted(self.data) if k.startswith(prefix)}

    async def count(self, prefix):
        await self._pause()
        return sum(1 for k in self.data if k.startswith(prefix))


class FakeClock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def registry(store, clock):
    return KeyRegistry(store, clock=clock)


@pytest.fixture
def interleaving_registry(clock):
    return KeyRegistry(MemoryKeyValueStore(yield_control=True), clock=clock)


@pytest.fixture
def blocklist():
    """Blocklist preloaded with a small snapshot; never touches the network."""
    bl_store = MemoryKeyValueStore()
    bl_store.data["blocklist:domains"] = {
        "domains": ["mailinator.com", "tempmail.com", "yopmail.com"],
        "count": 3,
        "updated_at": "2026-03-01T00:00:00Z",
    }
    return DomainBlocklist(bl_store, urls=[], cache_ttl_seconds=300)


@pytest.fixture
def client(registry, blocklist):
    from fastapi.testclient import TestClient

    from app.main import app
    from app.services.domain_list import get_domain_blocklist
    from app.services.key_registry import get_key_registry

    app.dependency_overrides[get_key_registry] = lambda: registry
    app.dependency_overrides[get_domain_blocklist] = lambda: blocklist
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
