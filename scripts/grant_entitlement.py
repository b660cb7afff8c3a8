"""
Grant (or replace) a plan for a user without a Stripe payment.

Applies the same upsert as a completed checkout: quotas from the plan table,
both counters reset, 12-month validity. Used for support and comp accounts.

Usage:
    python -m scripts.grant_entitlement --user-id <auth user id> --plan basic
    python -m scripts.grant_entitlement --user-id <auth user id> --plan premium --storage-upgrades 1
"""
import argparse
import asyncio
import logging

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def grant(user_id: str, plan_type: str, storage_upgrades: int = 0, session_factory=None):
    from src.services.entitlements import EntitlementStore
    from src.services.plan_limits import PLAN_CONFIGS, STORAGE_UPGRADE_INCREMENT, get_plan_config

    config = get_plan_config(plan_type)
    if config is None:
        raise SystemExit(f"Unknown plan '{plan_type}'. Choose from: {', '.join(PLAN_CONFIGS)}")

    if session_factory is None:
        from src.database import async_session_factory
        session_factory = async_session_factory

    async with session_factory() as db:
        store = EntitlementStore(db)
        await store.create_or_replace_active(user_id, plan_type, config)
        if storage_upgrades > 0:
            await store.increment_storage_ceiling(user_id, STORAGE_UPGRADE_INCREMENT * storage_upgrades)
        await db.commit()
        entitlement = await store.get(user_id)

    logger.info(
        "Granted %s to %s: leads/month=%s storage=%d",
        plan_type, user_id, entitlement.leads_per_month, entitlement.max_storage_packages,
    )
    return entitlement


def main():
    parser = argparse.ArgumentParser(description="Grant a plan without payment")
    parser.add_argument("--user-id", required=True, help="Auth provider user id (JWT sub)")
    parser.add_argument("--plan", required=True, help="basic or premium")
    parser.add_argument(
        "--storage-upgrades", type=int, default=0,
        help="Number of +200 storage upgrades to add on top of the plan",
    )
    args = parser.parse_args()

    asyncio.run(grant(args.user_id, args.plan, args.storage_upgrades))


if __name__ == "__main__":
    main()
