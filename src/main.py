"""
LeadGenAI - AI lead generation with Stripe-paid credit packs.
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from src.config import get_settings
from src.api.router import api_router
from src.database import dispose_engine
from src.services.errors import BillingError
from src.utils.logging import (
    bind_correlation_id,
    configure_structured_logging,
)
from src.utils.redis import close_redis

logger = logging.getLogger("leadgenai")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = bind_correlation_id(request.headers.get("X-Correlation-ID"))
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    """Render domain errors as {"error": message} with their status code."""
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("LeadGenAI starting up (env=%s)", settings.app_env)

    if not settings.auth_jwt_secret:
        logger.warning(
            "AUTH_JWT_SECRET not set - falling back to APP_SECRET_KEY. "
            "Set the auth provider's JWT secret for production."
        )
    if not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET not set - every webhook will be rejected")

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    yield

    await close_redis()
    await dispose_engine()
    logger.info("LeadGenAI shutdown complete")


def _cors_origins(settings) -> list[str]:
    origins = [settings.app_base_url]
    origins += [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    if settings.app_env == "development":
        origins += ["http://localhost:3000", "http://localhost:5173"]
    return list(dict.fromkeys(origins))


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="LeadGenAI",
        description="AI lead generation with credit-pack billing",
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID",
            "Accept", "Origin", "X-Requested-With",
        ],
    )

    # Correlation ID middleware (must be added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.add_exception_handler(BillingError, billing_error_handler)
    application.include_router(api_router)

    return application


app = create_app()
