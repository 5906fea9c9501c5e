"""
Admin router — account inspection, limit overrides, blocklist upkeep.

Every route requires the X-Admin-Secret header (require_admin). These
routes are excluded from the public OpenAPI schema.

Endpoints:
  GET   /admin/accounts/{email}        — one account
  PATCH /admin/accounts/{email}/limit  — set/clear a daily limit override
  GET   /admin/accounts                — filtered, paginated account list
  POST  /admin/domains/update          — force a blocklist refresh
  GET   /admin/reports                 — community-reported domains
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.auth.dependencies import require_admin
from app.schemas.admin import (
    AccountListOut,
    AccountOut,
    DomainUpdateOut,
    LimitUpdateOut,
    LimitUpdateRequest,
)
from app.schemas.reports import ReportListOut, ReportOut
from app.services.domain_list import (
    BlocklistUpdateError,
    DomainBlocklist,
    get_domain_blocklist,
)
from app.services.key_registry import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    FailureKind,
    KeyRegistry,
    get_key_registry,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
    include_in_schema=False,
)

Registry = Annotated[KeyRegistry, Depends(get_key_registry)]
Blocklist = Annotated[DomainBlocklist, Depends(get_domain_blocklist)]

_ACCOUNT_NOT_FOUND = HTTPException(
    status_code=status.HTTP_404_NOT_FOUND,
    detail={"error": "Account not found", "code": FailureKind.NOT_FOUND.value},
)


# ── Accounts ────────────────────────────────────────────────
@router.get("/accounts/{email}", response_model=AccountOut)
async def get_account(email: str, registry: Registry) -> AccountOut:
    account = await registry.get_account_by_email(email)
    if account is None:
        raise _ACCOUNT_NOT_FOUND
    return AccountOut.model_validate(account)


@router.patch("/accounts/{email}/limit", response_model=LimitUpdateOut)
async def update_account_limit(
    email: str,
    payload: LimitUpdateRequest,
    registry: Registry,
) -> LimitUpdateOut:
    result = await registry.update_daily_limit(email, payload.daily_limit)
    if result is None:
        raise _ACCOUNT_NOT_FOUND
    return LimitUpdateOut(
        success=True,
        previous_limit=result.previous_limit,
        new_limit=result.new_limit,
    )


@router.get("/accounts", response_model=AccountListOut)
async def list_accounts(
    registry: Registry,
    registered_within_days: int | None = Query(default=None, ge=0),
    min_usage_count: int | None = Query(default=None, ge=0),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
) -> AccountListOut:
    page = await registry.list_accounts(
        registered_within_days=registered_within_days,
        min_usage_count=min_usage_count,
        limit=limit,
        offset=offset,
    )
    return AccountListOut(
        accounts=[AccountOut.model_validate(a) for a in page.accounts],
        total_count=page.total_count,
        limit=limit,
        offset=offset,
    )


# ── Blocklist ───────────────────────────────────────────────
@router.post("/domains/update", response_model=DomainUpdateOut)
async def force_update_domain_list(blocklist: Blocklist) -> DomainUpdateOut:
    try:
        count = await blocklist.refresh()
    except BlocklistUpdateError as exc:
        logger.exception("Failed to update domain list")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "Failed to update domain list",
                "code": "INTERNAL_ERROR",
                "details": str(exc),
            },
        ) from exc

    return DomainUpdateOut(
        success=True,
        count=count,
        message=f"Successfully updated domain list with {count} domains",
    )


# ── Community reports ───────────────────────────────────────
@router.get("/reports", response_model=ReportListOut)
async def list_reports(
    registry: Registry,
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
) -> ReportListOut:
    page = await registry.list_reported_domains(limit=limit, offset=offset)
    return ReportListOut(
        reports=[ReportOut.model_validate(r) for r in page.reports],
        total_count=page.total_count,
        limit=limit,
        offset=offset,
    )
