"""
API key router — self-service registration and usage lookup.

POST /api/v1/keys
  1. Verifies the Turnstile bot challenge.
  2. Validates the email format and rejects disposable domains.
  3. Issues a key (or re-reads the existing one — registration is
     idempotent per email).
  4. Emails the key; it is never returned in the response body.

GET /api/v1/keys/{email}
  Usage for the key registered to an email, as of today (UTC).
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.core.config import settings
from app.schemas.keys import CreateKeyRequest, CreateKeyResponse, KeyInfoResponse
from app.services.domain_list import DomainBlocklist, get_domain_blocklist
from app.services.email_address import email_domain, is_valid_email_format
from app.services.key_registry import FailureKind, KeyRegistry, get_key_registry
from app.services.mailer import send_api_key_email
from app.services.turnstile import verify_turnstile_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["API Keys"])

Registry = Annotated[KeyRegistry, Depends(get_key_registry)]
Blocklist = Annotated[DomainBlocklist, Depends(get_domain_blocklist)]


def _bad_request(message: str, code: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": message, "code": code},
    )


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("CF-Connecting-IP") or request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post(
    "/keys",
    response_model=CreateKeyResponse,
    summary="Request a new API key",
    description="Creates an API key and sends it to the provided email address.",
)
async def create_key(
    payload: CreateKeyRequest,
    request: Request,
    registry: Registry,
    blocklist: Blocklist,
) -> CreateKeyResponse:
    # ── 1. Bot challenge ────────────────────────────────────
    if not payload.turnstile_token:
        raise _bad_request("Turnstile verification required", "TURNSTILE_REQUIRED")

    turnstile = await verify_turnstile_token(
        payload.turnstile_token,
        settings.TURNSTILE_SECRET_KEY,
        _client_ip(request),
    )
    if not turnstile.success:
        logger.info("Turnstile validation failed: %s", turnstile.error_codes)
        raise _bad_request("Turnstile verification failed", "TURNSTILE_FAILED")

    # ── 2. Email checks ─────────────────────────────────────
    if not is_valid_email_format(payload.email):
        raise _bad_request("Invalid email format", "INVALID_EMAIL")

    if await blocklist.is_disposable(email_domain(payload.email)):
        raise _bad_request(
            "Cannot use disposable email for API key registration",
            "DISPOSABLE_EMAIL",
        )

    # ── 3. Issue (or re-read) the key ───────────────────────
    result = await registry.create_key(payload.email)

    # ── 4. Deliver ──────────────────────────────────────────
    sent = await send_api_key_email(
        payload.email, result.api_key, daily_limit=registry.default_limit,
    )
    if not sent.success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to send email. Please try again.", "code": "EMAIL_FAILED"},
        )

    return CreateKeyResponse(
        success=True,
        message=(
            "API key created and sent to your email"
            if result.is_new
            else "Your existing API key has been resent to your email"
        ),
    )


@router.get(
    "/keys/{email}",
    response_model=KeyInfoResponse,
    summary="Get API key usage information",
    description="Returns usage stats for an API key by email.",
)
async def get_key_info(email: str, registry: Registry) -> KeyInfoResponse:
    info = await registry.get_key_info(email)
    if not info.exists:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "No API key found for this email",
                "code": FailureKind.NOT_FOUND.value,
            },
        )

    return KeyInfoResponse(
        exists=True,
        requests_today=info.requests_today,
        daily_limit=info.daily_limit,
        created_at=info.created_at,
    )
