"""
Pydantic v2 schemas for the admin endpoints.

AccountOut maps directly from the registry's AdminAccountInfo dataclass
(from_attributes=True), so routers never copy fields by hand.
"""

from __future__ import annotations

import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.services.key_registry import MAX_DAILY_LIMIT


class AccountOut(BaseModel):
    """One account as seen by an admin."""

    model_config = ConfigDict(from_attributes=True)

    email: str
    created_at: datetime.datetime
    total_usage: int
    requests_today: int
    daily_limit: int
    custom_daily_limit: int | None


class AccountListOut(BaseModel):
    accounts: list[AccountOut]
    total_count: int
    limit: int
    offset: int


class LimitUpdateRequest(BaseModel):
    """Payload accepted by PATCH /admin/accounts/{email}/limit."""

    model_config = ConfigDict(extra="forbid")

    daily_limit: int = Field(
        ...,
        ge=0,
        le=MAX_DAILY_LIMIT,
        examples=[5000],
        description="New requests/day. The system default clears the override.",
    )


class LimitUpdateOut(BaseModel):
    success: bool
    previous_limit: int
    new_limit: int


class DomainUpdateOut(BaseModel):
    success: bool
    count: int
    message: str
