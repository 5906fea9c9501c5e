"""
Disposable-domain blocklist — fetch, merge, persist, cache.

Sources are plain-text lists (one domain per line, `#` comments). A
refresh fetches all of them concurrently via httpx, takes the sorted
union, and stores the snapshot under `blocklist:domains`. Lookups hit an
in-memory copy that expires after BLOCKLIST_CACHE_TTL_SECONDS.

A source that fails simply contributes nothing; a refresh where every
source failed raises BlocklistUpdateError and leaves the stored snapshot
untouched.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import time
from collections.abc import Callable, Sequence

import httpx

from app.core.config import settings
from app.core.database import async_session_factory
from app.core.kv_store import KeyValueStore, SqlKeyValueStore
from app.schemas.records import BlocklistSnapshot

logger = logging.getLogger(__name__)

BLOCKLIST_KEY = "blocklist:domains"
_USER_AGENT = "DisposableCheck/1.0"
_FETCH_TIMEOUT_SECONDS = 30.0


class BlocklistUpdateError(RuntimeError):
    """Raised when no source produced any domains."""


def parse_domain_list(text: str) -> list[str]:
    """Normalise one source: trimmed, lowercase, no comments or junk lines."""
    domains = []
    for line in text.splitlines():
        domain = line.strip().lower()
        if domain and not domain.startswith("#") and "." in domain:
            domains.append(domain)
    return domains


async def fetch_domain_list(client: httpx.AsyncClient, url: str) -> list[str]:
    """Fetch one source. Any failure yields an empty list."""
    try:
        response = await client.get(url)
    except httpx.HTTPError as exc:
        logger.warning("Blocklist fetch failed for %s: %s", url, exc)
        return []

    if response.status_code != 200:
        logger.warning(
            "Blocklist source %s returned status=%d", url, response.status_code,
        )
        return []

    return parse_domain_list(response.text)


class DomainBlocklist:
    """Merged blocklist with a TTL cache in front of the stored snapshot."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        urls: Sequence[str],
        cache_ttl_seconds: float,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._urls = list(urls)
        self._cache_ttl = cache_ttl_seconds
        self._monotonic = monotonic
        self._cached: frozenset[str] | None = None
        self._cached_at = 0.0
        self._refresh_lock = asyncio.Lock()

    def _invalidate(self) -> None:
        self._cached = None
        self._cached_at = 0.0

    async def refresh(self) -> int:
        """Re-fetch every source, persist the union, return its size."""
        async with self._refresh_lock:
            count = await self._refresh_locked()

        logger.info("Blocklist refreshed: %d domains", count)
        return count

    async def _refresh_locked(self) -> int:
        """Fetch, merge and persist. Caller holds _refresh_lock."""
        async with httpx.AsyncClient(
            timeout=_FETCH_TIMEOUT_SECONDS,
            headers={"User-Agent": _USER_AGENT},
            follow_redirects=True,
        ) as client:
            results = await asyncio.gather(
                *(fetch_domain_list(client, url) for url in self._urls)
            )

        domains = sorted({d for result in results for d in result})
        if not domains:
            raise BlocklistUpdateError("Failed to fetch any domains")

        snapshot = BlocklistSnapshot(
            domains=domains,
            count=len(domains),
            updated_at=datetime.datetime.now(datetime.timezone.utc),
        )
        await self._store.put(BLOCKLIST_KEY, snapshot.model_dump(mode="json"))
        self._invalidate()
        return len(domains)

    async def get_domains(self) -> frozenset[str]:
        """Current blocklist; populated from the sources on first use."""
        now = self._monotonic()
        if self._cached is not None and now - self._cached_at < self._cache_ttl:
            return self._cached

        raw = await self._store.get(BLOCKLIST_KEY)
        if raw is None:
            # Concurrent cold misses queue here; only the first one fetches.
            async with self._refresh_lock:
                raw = await self._store.get(BLOCKLIST_KEY)
                if raw is None:
                    count = await self._refresh_locked()
                    logger.info("Blocklist populated: %d domains", count)
                    raw = await self._store.get(BLOCKLIST_KEY)
            if raw is None:
                raise BlocklistUpdateError("Blocklist snapshot missing after refresh")

        snapshot = BlocklistSnapshot.model_validate(raw)
        self._cached = frozenset(snapshot.domains)
        self._cached_at = now
        return self._cached

    async def count(self) -> int:
        return len(await self.get_domains())

    async def is_disposable(self, domain: str) -> bool:
        return domain.lower() in await self.get_domains()


async def blocklist_refresh_loop(blocklist: DomainBlocklist, interval_hours: int) -> None:
    """Periodically refresh the blocklist. Errors are logged, never fatal."""
    while True:
        await asyncio.sleep(interval_hours * 3600)
        try:
            count = await blocklist.refresh()
            logger.info("Scheduled blocklist refresh: %d domains", count)
        except Exception:
            logger.exception("Scheduled blocklist refresh failed")


# ── Dependency ──────────────────────────────────────────────
_blocklist: DomainBlocklist | None = None


def get_domain_blocklist() -> DomainBlocklist:
    """FastAPI dependency — the process-wide blocklist."""
    global _blocklist
    if _blocklist is None:
        _blocklist = DomainBlocklist(
            SqlKeyValueStore(async_session_factory),
            urls=settings.BLOCKLIST_URLS,
            cache_ttl_seconds=settings.BLOCKLIST_CACHE_TTL_SECONDS,
        )
    return _blocklist
