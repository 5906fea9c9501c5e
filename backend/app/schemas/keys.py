"""
Pydantic v2 schemas for API key registration and lookup.

Email format is NOT validated here: the router answers malformed emails
with its own 400 INVALID_EMAIL body rather than a generic 422.
"""

from __future__ import annotations

import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# ── Request schema ──────────────────────────────────────────
class CreateKeyRequest(BaseModel):
    """Payload accepted by POST /api/v1/keys."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(
        ...,
        min_length=3,
        max_length=254,
        examples=["dev@example.com"],
        description="Address the key is issued to and sent to.",
    )
    turnstile_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("turnstile_token", "turnstileToken"),
        description="Cloudflare Turnstile response token from the signup form.",
    )


# ── Response schemas ────────────────────────────────────────
class CreateKeyResponse(BaseModel):
    success: bool
    message: str


class KeyInfoResponse(BaseModel):
    """Usage for the key registered to an email, as of today (UTC)."""

    exists: bool
    requests_today: int
    daily_limit: int
    created_at: datetime.datetime
