"""
Lead search, saved packages, search history and dashboard stats.

Every endpoint requires a Bearer token and only sees the caller's rows.
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import CurrentUser, get_current_user
from src.config import get_settings
from src.database import get_db
from src.schemas.api_responses import (
    DashboardStats,
    LeadRecord,
    LeadSearchRequest,
    LeadSearchResponse,
    PackageCreate,
    PackageSummary,
    SearchHistoryEntry,
)
from src.services import packages as package_service
from src.services.entitlements import EntitlementStore
from src.services.errors import QuotaExceeded
from src.services.guard import EntitlementGuard
from src.services.lead_generation import generate_leads
from src.utils.rate_limiter import check_user_rate_limit

logger = logging.getLogger(__name__)
router = APIRouter(tags=["leads"])


def get_guard(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> EntitlementGuard:
    return EntitlementGuard(EntitlementStore(db), user.id)


@router.post("/api/v1/leads/search", response_model=LeadSearchResponse)
async def search_leads(
    body: LeadSearchRequest,
    db: AsyncSession = Depends(get_db),
    guard: EntitlementGuard = Depends(get_guard),
):
    """
    Generate leads for a query. Credits are checked before the provider is
    called and charged only for provider-generated leads.
    """
    settings = get_settings()

    await guard.refresh()
    if not guard.can_generate:
        raise QuotaExceeded("Out of credits")

    query = body.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Please enter a search query")

    if body.leadCount < 1 or body.leadCount > settings.max_leads_per_search:
        raise HTTPException(
            status_code=400,
            detail=f"Please enter a number between 1 and {settings.max_leads_per_search}",
        )

    remaining = guard.credits_remaining
    if remaining is not None and body.leadCount > remaining:
        raise QuotaExceeded(f"You only have {remaining} credits remaining")

    allowed, retry_after = await check_user_rate_limit(
        guard.user_id, "search", settings.search_rate_limit_per_minute,
    )
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail="Too many searches",
            headers={"Retry-After": str(retry_after)},
        )

    result = await generate_leads(
        query=query,
        industry=body.industry,
        location=body.location,
        company_size=body.companySize,
        lead_count=body.leadCount,
    )
    leads = result["leads"]

    if not result["fallback"]:
        await guard.record_generation(len(leads))
    await package_service.record_search(db, guard.user_id, query, len(leads))

    await guard.refresh()
    logger.info(
        "Generated %d leads for user %s (fallback=%s)", len(leads), guard.user_id[:8], result["fallback"],
        extra={"user_id": guard.user_id},
    )
    return {
        "leads": leads,
        "note": result["note"],
        "credits_remaining": guard.credits_remaining,
    }


@router.post("/api/v1/packages", response_model=PackageSummary, status_code=201)
async def create_package(
    body: PackageCreate,
    db: AsyncSession = Depends(get_db),
    guard: EntitlementGuard = Depends(get_guard),
):
    if not body.leads:
        raise HTTPException(status_code=400, detail="No leads to save")

    return await package_service.save_package(
        db,
        guard,
        leads=[lead.model_dump() for lead in body.leads],
        search_query=body.search_query.strip(),
        package_name=body.package_name,
    )


@router.get("/api/v1/packages", response_model=list[PackageSummary])
async def list_packages(
    q: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await package_service.list_packages(db, user.id, q=(q or "").strip() or None)


@router.get("/api/v1/packages/{package_id}/leads", response_model=list[LeadRecord])
async def list_package_leads(
    package_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    leads = await package_service.list_package_leads(db, user.id, package_id)
    if leads is None:
        raise HTTPException(status_code=404, detail="Package not found")
    return leads


@router.delete("/api/v1/packages/{package_id}")
async def delete_package(
    package_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    if not await package_service.delete_package(db, user.id, package_id):
        raise HTTPException(status_code=404, detail="Package not found")
    return {"deleted": True}


@router.get("/api/v1/leads", response_model=list[LeadRecord])
async def list_leads(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await package_service.list_leads(db, user.id)


@router.get("/api/v1/history", response_model=list[SearchHistoryEntry])
async def search_history(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await package_service.list_history(db, user.id)


@router.get("/api/v1/dashboard/stats", response_model=DashboardStats)
async def dashboard_stats(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await package_service.dashboard_stats(db, user.id)
