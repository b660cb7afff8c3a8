"""
Database models - import all models here so Alembic can discover them.
"""
from src.models.subscription import Subscription
from src.models.lead_package import LeadPackage
from src.models.lead import Lead
from src.models.search_history import SearchHistory
from src.models.webhook_event import WebhookEvent

__all__ = [
    "Subscription",
    "LeadPackage",
    "Lead",
    "SearchHistory",
    "WebhookEvent",
]
