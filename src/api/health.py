"""
Health check endpoints - used by load balancers, Docker healthcheck, and monitoring.

- GET /health       - basic liveness (always 200 if app running)
- GET /health/ready - readiness check (DB + Redis)
- GET /health/deep  - deep check (DB + Redis + Stripe config + AI heartbeat)
"""
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from src.config import get_settings
from src.database import get_db
from src.utils.redis import get_redis, redis_key

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])

VERSION = "1.0.0"


@router.get("/health")
async def health_check():
    """Basic liveness check - returns 200 if the app is running."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
    }


@router.get("/health/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db),
):
    """Readiness check - verifies database and Redis connectivity."""
    checks = {
        "database": (await _check_database(db))["healthy"],
        "redis": (await _check_redis())["healthy"],
    }
    all_healthy = all(checks.values())
    return {
        "status": "ready" if all_healthy else "degraded",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/deep")
async def deep_health_check(
    db: AsyncSession = Depends(get_db),
):
    """
    Deep health check - database and Redis are critical; Stripe configuration
    and the AI provider heartbeat only degrade the status.
    """
    checks = {
        "database": await _check_database(db),
        "redis": await _check_redis(),
        "stripe": _check_stripe_config(),
        "ai_service": await _check_ai_service(),
    }

    critical_healthy = all(checks[k]["healthy"] for k in ("database", "redis"))
    all_healthy = all(c["healthy"] for c in checks.values())

    if all_healthy:
        status = "healthy"
    elif critical_healthy:
        status = "degraded"
    else:
        status = "unhealthy"

    return {
        "status": status,
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
    }


async def _check_database(db: AsyncSession) -> dict:
    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        return {"healthy": True}
    except Exception as e:
        logger.error("Database health check failed: %s", str(e))
        return {"healthy": False, "error": str(e)}


async def _check_redis() -> dict:
    try:
        redis = await get_redis()
        await redis.ping()
        return {"healthy": True}
    except Exception as e:
        logger.warning("Redis health check failed: %s", str(e))
        return {"healthy": False, "error": str(e)}


def _check_stripe_config() -> dict:
    settings = get_settings()
    missing = [
        name for name, value in (
            ("stripe_secret_key", settings.stripe_secret_key),
            ("stripe_webhook_secret", settings.stripe_webhook_secret),
        ) if not value
    ]
    if missing:
        return {"healthy": False, "missing": missing}
    return {"healthy": True}


async def _check_ai_service() -> dict:
    """Last successful completion timestamp written by the lead generator."""
    try:
        redis = await get_redis()
        last_call = await redis.get(redis_key("ai_service", "last_success"))
        return {"healthy": True, "last_success": last_call}
    except Exception:
        return {"healthy": True, "note": "Unable to check AI heartbeat"}
