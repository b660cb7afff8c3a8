"""
Plan configuration - central source of truth for what each purchase grants.

Shared by the checkout initiator (prices, descriptions) and the webhook
reconciler (quotas). Both must read from here so they can never disagree.
"""
from dataclasses import dataclass
from typing import Optional

UNLIMITED_LEADS = -1

STORAGE_UPGRADE_INCREMENT = 200
STORAGE_UPGRADE_AMOUNT_CENTS = 1499
STORAGE_UPGRADE_VALIDITY_DAYS = 365

ENTITLEMENT_VALIDITY_DAYS = 365


@dataclass(frozen=True)
class PlanConfig:
    slug: str
    name: str
    amount_cents: int
    leads_per_month: int
    max_storage_packages: int
    description: str

    @property
    def price_display(self) -> str:
        return f"${self.amount_cents / 100:,.2f}"

    @property
    def unlimited(self) -> bool:
        return self.leads_per_month == UNLIMITED_LEADS


PLAN_CONFIGS: dict[str, PlanConfig] = {
    "basic": PlanConfig(
        slug="basic",
        name="Basic Credits Pack",
        amount_cents=4900,
        leads_per_month=500,
        max_storage_packages=15,
        description="Generate up to 500 leads (1 credit = 1 lead), includes 15 storage packages",
    ),
    "premium": PlanConfig(
        slug="premium",
        name="Premium Credits Pack",
        amount_cents=6900,
        leads_per_month=UNLIMITED_LEADS,
        max_storage_packages=30,
        description="Unlimited lead generation, includes 30 storage packages",
    ),
}


def is_valid_plan(plan_type: Optional[str]) -> bool:
    return plan_type in PLAN_CONFIGS


def get_plan_config(plan_type: Optional[str]) -> Optional[PlanConfig]:
    """Config for a plan slug, or None. Unknown plans never fall back to a default."""
    if not plan_type:
        return None
    return PLAN_CONFIGS.get(plan_type)


def plan_catalog() -> list[dict]:
    """Public plan list for the pricing page, including the storage add-on."""
    plans = [
        {
            "slug": cfg.slug,
            "name": cfg.name,
            "price": cfg.price_display,
            "leads_per_month": cfg.leads_per_month,
            "max_storage_packages": cfg.max_storage_packages,
            "description": cfg.description,
        }
        for cfg in PLAN_CONFIGS.values()
    ]
    plans[-1]["popular"] = True
    return plans


def storage_addon() -> dict:
    return {
        "slug": "storage",
        "name": "Storage Upgrade",
        "price": f"${STORAGE_UPGRADE_AMOUNT_CENTS / 100:,.2f}",
        "storage_increment": STORAGE_UPGRADE_INCREMENT,
        "validity_days": STORAGE_UPGRADE_VALIDITY_DAYS,
    }
