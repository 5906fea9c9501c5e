"""
Email check router — the product's main endpoint.

GET /api/v1/check?email=user@tempmail.com
  1. Authorizes via API key (quota consumed) or trusted website origin.
  2. Validates the email format.
  3. Looks the domain up in the disposable blocklist.
"""

import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.auth.rate_limit import CheckContext, enforce_check_quota
from app.schemas.check import EmailCheckResponse
from app.services.domain_list import DomainBlocklist, get_domain_blocklist
from app.services.email_address import email_domain, is_valid_email_format

router = APIRouter(tags=["Email"])

Quota = Annotated[CheckContext, Depends(enforce_check_quota)]
Blocklist = Annotated[DomainBlocklist, Depends(get_domain_blocklist)]


@router.get(
    "/check",
    response_model=EmailCheckResponse,
    summary="Check if an email address is disposable",
    description=(
        "Returns whether the email uses a known disposable domain. "
        "Requires an X-API-Key header (1,000 requests/day by default)."
    ),
)
async def check_email(
    _quota: Quota,
    blocklist: Blocklist,
    email: str = Query(
        ...,
        description="Email address to check",
        examples=["user@tempmail.com"],
    ),
) -> EmailCheckResponse:
    if not is_valid_email_format(email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid email format", "code": "INVALID_EMAIL"},
        )

    domain = email_domain(email)
    return EmailCheckResponse(
        email=email,
        domain=domain,
        is_disposable=await blocklist.is_disposable(domain),
        is_valid_format=True,
        checked_at=datetime.datetime.now(datetime.timezone.utc),
    )
