"""
JSON log lines for the API, webhook and operator scripts.

Each line carries the request's correlation id so a checkout, the Stripe
webhook it triggers and the entitlement write can be followed together.
Billing context goes in via logging's extra= using the keys in LOG_EXTRA_KEYS.
"""
import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

LOG_EXTRA_KEYS = ("user_id", "event_id", "plan_type", "package_id", "provider", "error_code")

NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "stripe")

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def bind_correlation_id(cid: Optional[str] = None) -> str:
    """Bind cid (or a fresh uuid4 hex) to the current context and return it."""
    cid = cid or uuid.uuid4().hex
    _correlation_id.set(cid)
    return cid


class StructuredJsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "correlation_id": get_correlation_id(),
            "module": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(
            (key, getattr(record, key))
            for key in LOG_EXTRA_KEYS
            if getattr(record, key, None) is not None
        )
        return json.dumps(entry, default=str)


def configure_structured_logging(log_level: str = "INFO") -> None:
    """Install one JSON stdout handler on the root logger. Call once at app creation."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def mask_email(email: Optional[str]) -> str:
    """sarah@acme.com -> sa***@acme.com"""
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"
