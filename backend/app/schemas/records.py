"""
Pydantic v2 shapes for values persisted in the key-value store.

These are storage documents, not API schemas: the registry validates raw
JSON into them on every load and dumps them back with mode="json".

KeyRecord.total_usage defaults to 0 so records written before lifetime
tracking existed still load.
"""

from __future__ import annotations

import datetime

from pydantic import BaseModel, ConfigDict, Field


class KeyRecord(BaseModel):
    """Per-email key state: the key itself, counters, and limit override."""

    model_config = ConfigDict(extra="ignore")

    email: str
    api_key: str
    created_at: datetime.datetime
    requests_today: int = 0
    last_reset_date: datetime.date
    total_usage: int = 0
    custom_daily_limit: int | None = None

    def requests_on(self, today: datetime.date) -> int:
        """Requests counted for `today` — a stale reset date reads as zero."""
        return self.requests_today if self.last_reset_date == today else 0

    def effective_limit(self, default_limit: int) -> int:
        return (
            self.custom_daily_limit
            if self.custom_daily_limit is not None
            else default_limit
        )


class DomainReport(BaseModel):
    """Community report for a domain that should be treated as disposable."""

    model_config = ConfigDict(extra="ignore")

    domain: str
    report_count: int = 0
    first_reported_at: datetime.datetime
    last_reported_at: datetime.datetime
    reasons: list[str] = Field(default_factory=list)


class BlocklistSnapshot(BaseModel):
    """Merged disposable-domain list as last fetched from the sources."""

    domains: list[str]
    count: int
    updated_at: datetime.datetime
