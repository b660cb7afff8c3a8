"""
Domain errors for billing and entitlements.

Each carries the HTTP status it maps to; src/main.py renders them as
{"error": message}. Nothing here is fatal to the process - every failure is
scoped to a single request.
"""


class BillingError(Exception):
    """Base class for entitlement/billing failures surfaced to the caller."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class Unauthorized(BillingError):
    """Missing or invalid identity, or identity without an email."""

    status_code = 401


class InvalidPlan(BillingError):
    """Plan selector outside the supported set. Raised before any provider call."""

    status_code = 400


class ProviderError(BillingError):
    """The payment provider rejected the request. Message is passed through."""

    status_code = 502


class SignatureInvalid(BillingError):
    """Webhook authenticity check failed."""

    status_code = 400


class QuotaExceeded(BillingError):
    """Entitlement does not allow the requested action."""

    status_code = 402


class StorageLimitReached(QuotaExceeded):
    """Package storage ceiling reached."""

    status_code = 403


class StoreWriteFailure(BillingError):
    """An entitlement upsert or increment failed at the storage layer."""

    status_code = 500


class EntitlementRequired(BillingError):
    """Add-on requested by a user without an active plan."""

    status_code = 403
