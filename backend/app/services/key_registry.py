"""
Key registry — owner of every API key record and the global counters.

State lives in the key-value store under these namespaces:
  • key:<email>               — KeyRecord (primary, authoritative)
  • lookup:<api_key>          — email (secondary index, 1:1 with records)
  • global:totalEmailsChecked — successful checks, keyed or anonymous
  • report:<domain>           — community domain reports

Design decisions:
  • Single owner — one KeyRegistry per process, and every public
    operation runs under one asyncio.Lock from first read to last write.
    Two validations can therefore never both pass a stale limit check.
  • Record + index (+ global counter) are written with put_many, i.e.
    in one transaction. The record is authoritative; the index is
    rewritten alongside it on every record write.
  • Lazy daily reset — a stale last_reset_date reads as zero requests.
    Read-only operations compute that view; only validate_and_increment
    persists it, together with the increment.
  • Expected outcomes (unknown key, quota reached, unknown email) are
    result values, never exceptions. StorageError is the only thing that
    escapes, and nothing here retries it.

Known scaling limits: records are never deleted, and list_accounts /
get_global_stats scan the whole key: namespace.
"""

from __future__ import annotations

import asyncio
import datetime
import enum
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from app.auth.keys import generate_api_key, key_prefix
from app.core.config import settings
from app.core.database import async_session_factory
from app.core.kv_store import KeyValueStore, SqlKeyValueStore
from app.schemas.records import DomainReport, KeyRecord

logger = logging.getLogger(__name__)

# ── Limits ──────────────────────────────────────────────────
DEFAULT_DAILY_LIMIT = 1000
MAX_DAILY_LIMIT = 1_000_000
DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 1000
MAX_REPORT_REASONS = 20

# ── Storage keys ────────────────────────────────────────────
KEY_PREFIX = "key:"
LOOKUP_PREFIX = "lookup:"
REPORT_PREFIX = "report:"
GLOBAL_CHECKS_KEY = "global:totalEmailsChecked"

Clock = Callable[[], datetime.datetime]

_T = TypeVar("_T")


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class FailureKind(str, enum.Enum):
    """Expected, recoverable failure outcomes of registry operations."""

    INVALID_KEY = "INVALID_KEY"
    DATA_INCONSISTENCY = "DATA_INCONSISTENCY"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    NOT_FOUND = "NOT_FOUND"


# ── Results ─────────────────────────────────────────────────
@dataclass(frozen=True, slots=True)
class CreateKeyResult:
    api_key: str
    is_new: bool


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of validate_and_increment.

    remaining is set on success and on RATE_LIMIT_EXCEEDED (always 0),
    and left as None for unknown keys.
    """

    valid: bool
    email: str | None = None
    remaining: int | None = None
    error: FailureKind | None = None


@dataclass(frozen=True, slots=True)
class KeyInfo:
    exists: bool
    requests_today: int | None = None
    daily_limit: int | None = None
    created_at: datetime.datetime | None = None


@dataclass(frozen=True, slots=True)
class GlobalStats:
    total_emails_checked: int
    total_api_keys: int
    community_reports: int


@dataclass(frozen=True, slots=True)
class AdminAccountInfo:
    email: str
    created_at: datetime.datetime
    total_usage: int
    requests_today: int
    daily_limit: int
    custom_daily_limit: int | None


@dataclass(frozen=True, slots=True)
class LimitUpdate:
    previous_limit: int
    new_limit: int


@dataclass(frozen=True, slots=True)
class AccountPage:
    accounts: list[AdminAccountInfo]
    total_count: int


@dataclass(frozen=True, slots=True)
class ReportPage:
    reports: list[DomainReport]
    total_count: int


def _paginate(items: Sequence[_T], limit: int, offset: int) -> list[_T]:
    """Slice one page; limit is capped to MAX_PAGE_SIZE, negatives floor at 0."""
    capped = max(0, min(limit, MAX_PAGE_SIZE))
    start = max(0, offset)
    return list(items[start:start + capped])


class KeyRegistry:
    """Single-owner registry of API key records."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        clock: Clock = utc_now,
        default_limit: int = DEFAULT_DAILY_LIMIT,
    ) -> None:
        self._store = store
        self._clock = clock
        self._default_limit = default_limit
        self._lock = asyncio.Lock()

    @property
    def default_limit(self) -> int:
        return self._default_limit

    # ── Internals (caller holds the lock) ───────────────────
    def _now(self) -> datetime.datetime:
        return self._clock().astimezone(datetime.timezone.utc)

    def _today(self) -> datetime.date:
        return self._now().date()

    async def _load_record(self, email: str) -> KeyRecord | None:
        raw = await self._store.get(f"{KEY_PREFIX}{email}")
        if raw is None:
            return None
        return KeyRecord.model_validate(raw)

    async def _load_all_records(self) -> list[KeyRecord]:
        entries = await self._store.list(KEY_PREFIX)
        return [KeyRecord.model_validate(raw) for raw in entries.values() if raw]

    async def _global_checks(self) -> int:
        return int(await self._store.get(GLOBAL_CHECKS_KEY) or 0)

    @staticmethod
    def _record_entries(record: KeyRecord) -> dict[str, Any]:
        """Record and its index entry — always written together."""
        return {
            f"{KEY_PREFIX}{record.email}": record.model_dump(
                mode="json", exclude_none=True,
            ),
            f"{LOOKUP_PREFIX}{record.api_key}": record.email,
        }

    def _account_info(
        self, record: KeyRecord, today: datetime.date,
    ) -> AdminAccountInfo:
        return AdminAccountInfo(
            email=record.email,
            created_at=record.created_at,
            total_usage=record.total_usage,
            requests_today=record.requests_on(today),
            daily_limit=record.effective_limit(self._default_limit),
            custom_daily_limit=record.custom_daily_limit,
        )

    # ── Key lifecycle ───────────────────────────────────────
    async def create_key(self, email: str) -> CreateKeyResult:
        """Return the key for `email`, issuing one on first registration."""
        async with self._lock:
            existing = await self._load_record(email)
            if existing is not None:
                return CreateKeyResult(api_key=existing.api_key, is_new=False)

            now = self._now()
            record = KeyRecord(
                email=email,
                api_key=generate_api_key(),
                created_at=now,
                requests_today=0,
                last_reset_date=now.date(),
                total_usage=0,
            )
            await self._store.put_many(self._record_entries(record))

        logger.info("Issued API key %s", key_prefix(record.api_key))
        return CreateKeyResult(api_key=record.api_key, is_new=True)

    async def validate_and_increment(self, api_key: str) -> ValidationResult:
        """
        Authenticate a key and consume one request from today's quota.

        Order: lookup → load → lazy reset → limit check → increment →
        one commit of record + index + global counter. A rejected call
        persists nothing.
        """
        async with self._lock:
            email = await self._store.get(f"{LOOKUP_PREFIX}{api_key}")
            if email is None:
                return ValidationResult(valid=False, error=FailureKind.INVALID_KEY)

            record = await self._load_record(email)
            if record is None or record.api_key != api_key:
                logger.error(
                    "Key index entry %s does not match an account record",
                    key_prefix(api_key),
                )
                return ValidationResult(
                    valid=False, error=FailureKind.DATA_INCONSISTENCY,
                )

            today = self._today()
            if record.last_reset_date != today:
                record.requests_today = 0
                record.last_reset_date = today

            limit = record.effective_limit(self._default_limit)
            if record.requests_today >= limit:
                return ValidationResult(
                    valid=False,
                    remaining=0,
                    error=FailureKind.RATE_LIMIT_EXCEEDED,
                )

            record.requests_today += 1
            record.total_usage += 1

            entries = self._record_entries(record)
            entries[GLOBAL_CHECKS_KEY] = await self._global_checks() + 1
            await self._store.put_many(entries)

            return ValidationResult(
                valid=True,
                email=email,
                remaining=limit - record.requests_today,
            )

    async def get_key_info(self, email: str) -> KeyInfo:
        """Usage for `email` as of today. Never writes."""
        async with self._lock:
            record = await self._load_record(email)
            if record is None:
                return KeyInfo(exists=False)
            return KeyInfo(
                exists=True,
                requests_today=record.requests_on(self._today()),
                daily_limit=record.effective_limit(self._default_limit),
                created_at=record.created_at,
            )

    # ── Global counters ─────────────────────────────────────
    async def increment_global_check_count(self) -> int:
        async with self._lock:
            count = await self._global_checks() + 1
            await self._store.put(GLOBAL_CHECKS_KEY, count)
            return count

    async def get_global_stats(self) -> GlobalStats:
        async with self._lock:
            return GlobalStats(
                total_emails_checked=await self._global_checks(),
                total_api_keys=await self._store.count(KEY_PREFIX),
                community_reports=await self._store.count(REPORT_PREFIX),
            )

    # ── Admin ───────────────────────────────────────────────
    async def get_account_by_email(self, email: str) -> AdminAccountInfo | None:
        async with self._lock:
            record = await self._load_record(email)
            if record is None:
                return None
            return self._account_info(record, self._today())

    async def update_daily_limit(
        self, email: str, new_limit: int,
    ) -> LimitUpdate | None:
        """
        Set a per-account daily limit, clamped to [0, MAX_DAILY_LIMIT].

        A limit equal to the default clears the override. Counters are
        left untouched. Returns None for an unknown email.
        """
        async with self._lock:
            record = await self._load_record(email)
            if record is None:
                return None

            clamped = max(0, min(new_limit, MAX_DAILY_LIMIT))
            previous = record.effective_limit(self._default_limit)
            record.custom_daily_limit = (
                None if clamped == self._default_limit else clamped
            )
            await self._store.put_many(self._record_entries(record))

        logger.info("Daily limit updated: %d → %d", previous, clamped)
        return LimitUpdate(previous_limit=previous, new_limit=clamped)

    async def list_accounts(
        self,
        *,
        registered_within_days: int | None = None,
        min_usage_count: int | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> AccountPage:
        """
        Filter, sort newest-first, then paginate every account.

        Filters apply in order: registration cutoff (inclusive), then
        lifetime usage. total_count is the filtered, unpaginated size.
        """
        async with self._lock:
            records = await self._load_all_records()
            now = self._now()

        if registered_within_days is not None:
            cutoff = now - datetime.timedelta(days=registered_within_days)
            records = [r for r in records if r.created_at >= cutoff]

        if min_usage_count is not None:
            records = [r for r in records if r.total_usage >= min_usage_count]

        # sorted() is stable, so ties keep key order from the scan
        records = sorted(records, key=lambda r: r.created_at, reverse=True)

        today = now.date()
        page = _paginate(records, limit, offset)
        return AccountPage(
            accounts=[self._account_info(r, today) for r in page],
            total_count=len(records),
        )

    # ── Community domain reports ────────────────────────────
    async def report_domain(
        self, domain: str, reason: str | None = None,
    ) -> DomainReport:
        """Record one report for `domain` (case-insensitive)."""
        domain = domain.strip().lower()
        storage_key = f"{REPORT_PREFIX}{domain}"

        async with self._lock:
            now = self._now()
            raw = await self._store.get(storage_key)
            if raw is None:
                report = DomainReport(
                    domain=domain,
                    first_reported_at=now,
                    last_reported_at=now,
                )
            else:
                report = DomainReport.model_validate(raw)

            report.report_count += 1
            report.last_reported_at = now
            if reason and reason.strip():
                report.reasons = [*report.reasons, reason.strip()][-MAX_REPORT_REASONS:]

            await self._store.put(storage_key, report.model_dump(mode="json"))

        logger.info("Domain report for %s (total %d)", domain, report.report_count)
        return report

    async def list_reported_domains(
        self, *, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0,
    ) -> ReportPage:
        """Reported domains, most reported first, then most recent."""
        async with self._lock:
            entries = await self._store.list(REPORT_PREFIX)

        reports = sorted(
            (DomainReport.model_validate(raw) for raw in entries.values() if raw),
            key=lambda r: (r.report_count, r.last_reported_at),
            reverse=True,
        )
        return ReportPage(
            reports=_paginate(reports, limit, offset),
            total_count=len(reports),
        )


# ── Dependency ──────────────────────────────────────────────
_registry: KeyRegistry | None = None


def get_key_registry() -> KeyRegistry:
    """
    FastAPI dependency — the process-wide registry.

    Created on first use so importing this module never touches the DB.
    Tests swap it out via app.dependency_overrides.
    """
    global _registry
    if _registry is None:
        _registry = KeyRegistry(
            SqlKeyValueStore(async_session_factory),
            default_limit=settings.DEFAULT_DAILY_LIMIT,
        )
    return _registry
