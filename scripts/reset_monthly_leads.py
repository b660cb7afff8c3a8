"""
Reset current_month_leads for active entitlements.

There is no automatic monthly rollover; run this from a scheduler (or by
hand for a support case) at the start of each billing month.

Usage:
    python -m scripts.reset_monthly_leads --all
    python -m scripts.reset_monthly_leads --user-id <auth user id>
"""
import argparse
import asyncio
import logging
from typing import Optional

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def reset(user_id: Optional[str] = None, session_factory=None) -> int:
    """Reset one user's (or every active) lead counter. Returns rows reset."""
    from src.services.entitlements import EntitlementStore

    if session_factory is None:
        from src.database import async_session_factory
        session_factory = async_session_factory

    async with session_factory() as db:
        count = await EntitlementStore(db).reset_month_leads(user_id)
        await db.commit()

    logger.info(
        "Reset monthly lead usage for %d entitlement(s)%s",
        count, f" (user {user_id})" if user_id else "",
    )
    return count


def main():
    parser = argparse.ArgumentParser(description="Reset monthly lead usage")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--user-id", help="Reset a single user")
    target.add_argument("--all", action="store_true", help="Reset every active entitlement")
    args = parser.parse_args()

    asyncio.run(reset(user_id=None if args.all else args.user_id))


if __name__ == "__main__":
    main()
