"""
FastAPI dependencies for caller identification.

Two kinds of caller exist besides API-key holders:
  • Admins — identified by the X-Admin-Secret header, compared in
    constant time against ADMIN_API_SECRET.
  • The public website — identified by its Origin (or, for clients that
    only send it, a Referer) being one of ALLOWED_ORIGINS.

Security:
  • Same generic 401 for every admin auth failure mode.
  • An empty ADMIN_API_SECRET rejects everyone rather than accepting an
    empty header.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import Header, HTTPException, status

from app.core.config import settings

logger = logging.getLogger(__name__)

ADMIN_SECRET_HEADER = "X-Admin-Secret"

_ADMIN_AUTH_FAILED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail={"error": "Unauthorized", "code": "UNAUTHORIZED"},
)


def validate_admin_secret(provided: str | None, expected: str) -> bool:
    """Constant-time comparison; missing values on either side fail."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def is_trusted_origin(
    origin: str | None,
    referer: str | None,
    allowed_origins: list[str],
) -> bool:
    """True when the request comes from one of our own web origins."""
    if origin and origin in allowed_origins:
        return True
    # curl and some browsers send a Referer but no Origin
    if referer and any(referer.startswith(allowed) for allowed in allowed_origins):
        return True
    return False


async def require_admin(
    admin_secret: str | None = Header(default=None, alias=ADMIN_SECRET_HEADER),
) -> None:
    """
    FastAPI dependency — gate for /admin routes.

    Usage in routers:
        APIRouter(dependencies=[Depends(require_admin)])
    """
    if not validate_admin_secret(admin_secret, settings.ADMIN_API_SECRET):
        logger.warning("Rejected admin request (bad or missing secret)")
        raise _ADMIN_AUTH_FAILED
