"""
Entitlement guard - per-request view of what the current user may do.

Wraps one EntitlementStore and one user. The cached record is dropped after
every consumption so the next check always re-reads the database.
"""
import logging
from typing import Optional

from src.services import billing as billing_service
from src.services.entitlements import (
    EntitlementStore,
    can_generate,
    can_save_package,
    credits_remaining,
    storage_remaining,
)
from src.services.errors import StoreWriteFailure
from src.models.subscription import Subscription

logger = logging.getLogger(__name__)

_UNSET = object()


class EntitlementGuard:
    def __init__(self, store: EntitlementStore, user_id: str, billing=billing_service):
        self.store = store
        self.user_id = user_id
        self.billing = billing
        self._entitlement = _UNSET

    async def refresh(self) -> Optional[Subscription]:
        self._entitlement = await self.store.get(self.user_id)
        return self._entitlement

    def _require_loaded(self) -> Optional[Subscription]:
        if self._entitlement is _UNSET:
            raise RuntimeError("EntitlementGuard.refresh() must be awaited before checks")
        return self._entitlement

    @property
    def entitlement(self) -> Optional[Subscription]:
        return self._require_loaded()

    @property
    def can_generate(self) -> bool:
        return can_generate(self._require_loaded())

    @property
    def can_save_package(self) -> bool:
        return can_save_package(self._require_loaded())

    @property
    def credits_remaining(self) -> Optional[int]:
        return credits_remaining(self._require_loaded())

    @property
    def storage_remaining(self) -> int:
        return storage_remaining(self._require_loaded())

    def snapshot(self) -> dict:
        """Entitlement plus derived permissions, as served to the client."""
        ent = self._require_loaded()
        return {
            "subscription": ent,
            "can_generate": self.can_generate,
            "can_save_package": self.can_save_package,
            "credits_remaining": self.credits_remaining,
            "storage_remaining": self.storage_remaining,
        }

    async def request_upgrade(self, plan_type: str, email: Optional[str], origin: str) -> str:
        """Checkout URL for a credit pack. Navigation is up to the caller."""
        result = await self.billing.initiate_checkout(self.user_id, email, plan_type, origin)
        return result["url"]

    async def request_storage_upgrade(self, email: Optional[str], origin: str) -> str:
        result = await self.billing.initiate_storage_upgrade(self.user_id, email, origin, store=self.store)
        return result["url"]

    async def record_generation(self, lead_count: int) -> Optional[int]:
        """
        Charge lead_count leads after a successful generation. A failed write
        is logged and swallowed: the leads were already delivered.
        """
        if lead_count <= 0:
            return None
        try:
            new_total = await self.store.increment_leads(self.user_id, lead_count)
        except StoreWriteFailure as e:
            logger.error(
                "Lead consumption not recorded for user %s (%d leads): %s",
                self.user_id[:8], lead_count, e.message,
                extra={"user_id": self.user_id, "error_code": "usage_not_recorded"},
            )
            return None
        finally:
            self._entitlement = _UNSET
        return new_total

    async def record_package_saved(self) -> bool:
        """Consume one package slot. False when the ceiling was reached concurrently."""
        try:
            new_used = await self.store.increment_storage_used(self.user_id, 1)
        finally:
            self._entitlement = _UNSET
        return new_used is not None
