"""
Cloudflare Turnstile server-side token verification.

POSTs the widget token to the siteverify endpoint via httpx.
https://developers.cloudflare.com/turnstile/get-started/server-side-validation/

Network or parse failures are reported as an unsuccessful verification
with error code "internal-error" — callers only ever see a result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

logger = logging.getLogger(__name__)

_SITEVERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"


@dataclass(frozen=True, slots=True)
class TurnstileResult:
    success: bool
    error_codes: list[str] = field(default_factory=list)
    hostname: str | None = None


async def verify_turnstile_token(
    token: str,
    secret_key: str,
    remote_ip: str | None = None,
) -> TurnstileResult:
    """Ask Cloudflare whether `token` is a valid, unused challenge response."""
    form = {"secret": secret_key, "response": token}
    if remote_ip:
        form["remoteip"] = remote_ip

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(_SITEVERIFY_URL, data=form)
        data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("Turnstile validation error: %s", exc)
        return TurnstileResult(success=False, error_codes=["internal-error"])

    return TurnstileResult(
        success=bool(data.get("success", False)),
        error_codes=list(data.get("error-codes", [])),
        hostname=data.get("hostname"),
    )
