"""
FastAPI dependency for quota enforcement on the email check endpoint.

Two ways in:
  • X-API-Key present  — the key registry validates it and consumes one
    request from the key's daily quota (also bumps the global counter).
  • No key             — only the public website may check anonymously;
    its requests bump the global counter without touching any quota.

Order in request pipeline: AUTH + QUOTA → ROUTER LOGIC. A request with a
malformed email still consumes quota, since the check happens first.

Unknown keys and index inconsistencies both answer 401 with the same body
— callers cannot tell them apart. Quota exhaustion answers 429.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status

from app.auth.dependencies import is_trusted_origin
from app.core.config import settings
from app.services.key_registry import FailureKind, KeyRegistry, get_key_registry

_INVALID_KEY = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail={"error": "Invalid API key", "code": "UNAUTHORIZED"},
)

_MISSING_KEY = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail={"error": "Missing API key", "code": "UNAUTHORIZED"},
)

_RATE_LIMITED = HTTPException(
    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    detail={"error": "Daily rate limit exceeded", "code": "RATE_LIMITED"},
)


@dataclass(frozen=True, slots=True)
class CheckContext:
    """Who made a check request.

    Attributes:
        email:     Key owner, or None for anonymous website checks.
        remaining: Requests left today for the key, None when anonymous.
    """

    email: str | None = None
    remaining: int | None = None


async def enforce_check_quota(
    api_key: str | None = Header(default=None, alias="X-API-Key"),
    origin: str | None = Header(default=None, alias="Origin"),
    referer: str | None = Header(default=None, alias="Referer"),
    registry: KeyRegistry = Depends(get_key_registry),
) -> CheckContext:
    """Authorize one email check and account for it."""
    if api_key:
        result = await registry.validate_and_increment(api_key)
        if result.valid:
            return CheckContext(email=result.email, remaining=result.remaining)
        if result.error is FailureKind.RATE_LIMIT_EXCEEDED:
            raise _RATE_LIMITED
        raise _INVALID_KEY

    if not is_trusted_origin(origin, referer, settings.ALLOWED_ORIGINS):
        raise _MISSING_KEY

    await registry.increment_global_check_count()
    return CheckContext()
