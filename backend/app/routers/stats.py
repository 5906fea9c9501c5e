"""
Public stats and community report router.

GET  /api/v1/stats   — platform counters
POST /api/v1/report  — report a domain that should be classified as disposable
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.schemas.check import StatsResponse
from app.schemas.reports import ReportAccepted, ReportCreate
from app.services.domain_list import DomainBlocklist, get_domain_blocklist
from app.services.key_registry import KeyRegistry, get_key_registry

router = APIRouter()

Registry = Annotated[KeyRegistry, Depends(get_key_registry)]
Blocklist = Annotated[DomainBlocklist, Depends(get_domain_blocklist)]


@router.get(
    "/stats",
    tags=["Stats"],
    response_model=StatsResponse,
    summary="Get platform statistics",
    description=(
        "Total emails checked, disposable domains tracked, "
        "and domains reported by the community."
    ),
)
async def get_stats(registry: Registry, blocklist: Blocklist) -> StatsResponse:
    stats = await registry.get_global_stats()
    return StatsResponse(
        total_emails_checked=stats.total_emails_checked,
        total_disposable_domains=await blocklist.count(),
        community_reports=stats.community_reports,
    )


@router.post(
    "/report",
    tags=["Report"],
    response_model=ReportAccepted,
    summary="Report a disposable domain",
    description=(
        "Report a domain that should be classified as disposable. "
        "Community reports are reviewed by admins."
    ),
)
async def report_domain(payload: ReportCreate, registry: Registry) -> ReportAccepted:
    await registry.report_domain(payload.domain, payload.reason)
    return ReportAccepted(
        success=True,
        message="Domain reported successfully. Thank you for your contribution.",
    )
