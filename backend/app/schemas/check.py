"""
Pydantic v2 response schemas for the public check and stats endpoints.
"""

from __future__ import annotations

import datetime

from pydantic import BaseModel


class EmailCheckResponse(BaseModel):
    """Result of checking one address against the blocklist."""

    email: str
    domain: str
    is_disposable: bool
    is_valid_format: bool
    checked_at: datetime.datetime


class StatsResponse(BaseModel):
    """Public platform counters."""

    total_emails_checked: int
    total_disposable_domains: int
    community_reports: int
