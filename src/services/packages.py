"""
Lead packages, saved leads and search history for one user.

All queries are scoped by user_id. Saving a package consumes one storage
slot in the same transaction as the package and lead rows; deleting a
package detaches its leads and never gives the slot back.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.lead import Lead
from src.models.lead_package import LeadPackage
from src.models.search_history import SearchHistory
from src.services.errors import StorageLimitReached
from src.services.guard import EntitlementGuard

logger = logging.getLogger(__name__)

LEAD_COLUMNS = ("company_name", "contact_name", "email", "phone", "website", "industry", "description", "score")


def default_package_name(search_query: str, lead_count: int) -> str:
    return f"{search_query[:30]}... ({lead_count} leads)"


async def save_package(
    db: AsyncSession,
    guard: EntitlementGuard,
    leads: list[dict],
    search_query: str,
    package_name: Optional[str] = None,
) -> LeadPackage:
    """
    Persist a package with its leads. Raises StorageLimitReached when the
    user has no free slot, including when a concurrent save took the last one.
    """
    if not leads:
        raise ValueError("A package needs at least one lead")

    await guard.refresh()
    if not guard.can_save_package:
        raise StorageLimitReached(
            "You have reached your storage limit. Upgrade your storage to save more packages."
        )
    if not await guard.record_package_saved():
        await db.rollback()
        raise StorageLimitReached("Storage limit reached")

    user_id = guard.user_id
    package = LeadPackage(
        user_id=user_id,
        package_name=(package_name or "").strip() or default_package_name(search_query, len(leads)),
        search_query=search_query,
        lead_count=len(leads),
    )
    db.add(package)
    await db.flush()

    for lead in leads:
        db.add(Lead(
            user_id=user_id,
            package_id=package.id,
            status="new",
            **{k: lead.get(k) for k in LEAD_COLUMNS if lead.get(k) is not None},
        ))
    await db.flush()

    logger.info(
        "Saved package %s with %d leads for user %s", package.id, len(leads), user_id[:8],
        extra={"user_id": user_id, "package_id": str(package.id)},
    )
    return package


async def list_packages(db: AsyncSession, user_id: str, q: Optional[str] = None) -> list[LeadPackage]:
    stmt = select(LeadPackage).where(LeadPackage.user_id == user_id)
    if q:
        pattern = f"%{q}%"
        stmt = stmt.where(or_(
            LeadPackage.package_name.ilike(pattern),
            LeadPackage.search_query.ilike(pattern),
        ))
    result = await db.execute(stmt.order_by(LeadPackage.created_at.desc()))
    return list(result.scalars().all())


async def get_package(db: AsyncSession, user_id: str, package_id: uuid.UUID) -> Optional[LeadPackage]:
    result = await db.execute(
        select(LeadPackage).where(LeadPackage.id == package_id, LeadPackage.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def list_package_leads(db: AsyncSession, user_id: str, package_id: uuid.UUID) -> Optional[list[Lead]]:
    """Leads of one owned package, best score first. None if the package is not the user's."""
    if await get_package(db, user_id, package_id) is None:
        return None
    result = await db.execute(
        select(Lead)
        .where(Lead.package_id == package_id, Lead.user_id == user_id)
        .order_by(Lead.score.desc())
    )
    return list(result.scalars().all())


async def delete_package(db: AsyncSession, user_id: str, package_id: uuid.UUID) -> bool:
    if await get_package(db, user_id, package_id) is None:
        return False
    # Detach explicitly; SQLite only honours ON DELETE SET NULL with foreign_keys=ON
    await db.execute(
        update(Lead)
        .where(Lead.package_id == package_id)
        .values(package_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(LeadPackage)
        .where(LeadPackage.id == package_id, LeadPackage.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    logger.info("Deleted package %s", package_id, extra={"user_id": user_id, "package_id": str(package_id)})
    return True


async def list_leads(db: AsyncSession, user_id: str, limit: int = 500) -> list[Lead]:
    result = await db.execute(
        select(Lead)
        .where(Lead.user_id == user_id)
        .order_by(Lead.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def record_search(db: AsyncSession, user_id: str, query: str, results_count: int) -> SearchHistory:
    entry = SearchHistory(user_id=user_id, query=query, results_count=results_count)
    db.add(entry)
    await db.flush()
    return entry


async def list_history(db: AsyncSession, user_id: str, limit: int = 50) -> list[SearchHistory]:
    result = await db.execute(
        select(SearchHistory)
        .where(SearchHistory.user_id == user_id)
        .order_by(SearchHistory.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def dashboard_stats(db: AsyncSession, user_id: str, now: Optional[datetime] = None) -> dict:
    now = now or datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    total_leads = (await db.execute(
        select(func.count(Lead.id)).where(Lead.user_id == user_id)
    )).scalar() or 0
    total_packages = (await db.execute(
        select(func.count(LeadPackage.id)).where(LeadPackage.user_id == user_id)
    )).scalar() or 0
    searches_this_month = (await db.execute(
        select(func.count(SearchHistory.id)).where(
            SearchHistory.user_id == user_id,
            SearchHistory.created_at >= month_start,
        )
    )).scalar() or 0

    return {
        "total_leads": total_leads,
        "total_packages": total_packages,
        "searches_this_month": searches_this_month,
        "avg_leads_per_package": round(total_leads / total_packages) if total_packages else 0,
    }
