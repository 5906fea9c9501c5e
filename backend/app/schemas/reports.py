"""
Pydantic v2 schemas for community domain reports.

ReportCreate is what the public sends; ReportOut is what admins read back.
"""

from __future__ import annotations

import datetime

from pydantic import BaseModel, ConfigDict, Field

_DOMAIN_PATTERN = r"^([A-Za-z0-9]+(-[A-Za-z0-9]+)*\.)+[A-Za-z]{2,}$"


class ReportCreate(BaseModel):
    """Payload accepted by POST /api/v1/report."""

    model_config = ConfigDict(extra="forbid")

    domain: str = Field(
        ...,
        min_length=3,
        max_length=253,
        pattern=_DOMAIN_PATTERN,
        examples=["tempmail.example"],
        description="Domain that should be classified as disposable.",
    )
    reason: str | None = Field(
        default=None,
        max_length=500,
        description="Optional free-text justification.",
    )


class ReportAccepted(BaseModel):
    success: bool
    message: str


class ReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    domain: str
    report_count: int
    first_reported_at: datetime.datetime
    last_reported_at: datetime.datetime
    reasons: list[str]


class ReportListOut(BaseModel):
    reports: list[ReportOut]
    total_count: int
    limit: int
    offset: int
