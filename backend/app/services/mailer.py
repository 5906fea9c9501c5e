"""
Transactional email via the Resend HTTP API.

Only one message exists: delivering an API key to its owner. The key is
sent for both new registrations and re-requests, so the body does not
distinguish them.

Configuration:
  RESEND_API_KEY — server-side only; empty means delivery always fails
  EMAIL_FROM     — sender shown to the recipient
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

_RESEND_URL = "https://api.resend.com/emails"
_SITE_URL = "https://disposablecheck.irensaltali.com"

_API_KEY_EMAIL_HTML = """\
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="color: #111827;">Your API Key is Ready!</h1>
  <p style="color: #6b7280;">Thank you for signing up for DisposableCheck. Here's your API key:</p>
  <div style="background: #f3f4f6; border-radius: 6px; padding: 16px; font-family: monospace; word-break: break-all;">{api_key}</div>
  <h2 style="color: #111827; font-size: 18px;">Quick Start</h2>
  <pre style="background: #1f2937; color: #e5e7eb; border-radius: 6px; padding: 16px;">curl "{site_url}/api/v1/check?email=test@tempmail.com" \\
  -H "X-API-Key: {api_key}"</pre>
  <p style="color: #6b7280; font-size: 14px;"><strong>Rate Limit:</strong> {daily_limit:,} requests/day</p>
  <p style="color: #9ca3af; font-size: 12px;"><a href="{site_url}">{site_url}</a></p>
</body>
</html>
"""


@dataclass(frozen=True, slots=True)
class EmailResult:
    success: bool
    error: str | None = None


async def send_api_key_email(
    to: str,
    api_key: str,
    *,
    daily_limit: int | None = None,
) -> EmailResult:
    """Send `api_key` to `to`. Never raises for delivery problems.

    daily_limit is the quota quoted in the body; it defaults to
    DEFAULT_DAILY_LIMIT.
    """
    if not settings.RESEND_API_KEY:
        logger.error("RESEND_API_KEY is not configured — cannot send email")
        return EmailResult(success=False, error="Email delivery is not configured")

    payload = {
        "from": settings.EMAIL_FROM,
        "to": [to],
        "subject": "Your DisposableCheck API Key",
        "html": _API_KEY_EMAIL_HTML.format(
            api_key=api_key,
            site_url=_SITE_URL,
            daily_limit=(
                settings.DEFAULT_DAILY_LIMIT if daily_limit is None else daily_limit
            ),
        ),
    }
    headers = {
        "Authorization": f"Bearer {settings.RESEND_API_KEY}",
        "Content-Type": "application/json",
    }

    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            response = await client.post(_RESEND_URL, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        logger.error("Resend request failed: %s", exc)
        return EmailResult(success=False, error=str(exc))

    if response.status_code >= 300:
        logger.error(
            "Resend API error: status=%d body=%s",
            response.status_code,
            response.text[:500],
        )
        return EmailResult(success=False, error=f"Resend returned {response.status_code}")

    return EmailResult(success=True)
