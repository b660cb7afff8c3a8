"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8080"
    app_secret_key: str
    log_level: str = "INFO"
    allowed_origins: str = ""  # Comma-separated CORS origins (auto-includes localhost in dev)

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis (rate limiting)
    redis_url: str = "redis://localhost:6379/0"

    # Auth - bearer tokens are issued by the external identity provider
    auth_jwt_secret: str = ""
    auth_jwt_audience: str = "authenticated"
    auth_jwt_algorithm: str = "HS256"

    # Stripe Billing
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_premium_price_id: str = ""  # Optional preset price for the premium pack

    # Lead generation (OpenAI-compatible endpoint, OpenRouter by default)
    openai_api_key: str = ""
    openai_base_url: str = "https://openrouter.ai/api/v1"
    openai_model: str = "deepseek/deepseek-chat-v3-0324:free"
    openai_max_tokens: int = 3000
    openai_timeout_seconds: int = 60
    openai_referer: str = "https://leadgenai.com"

    # Sentry
    sentry_dsn: str = ""

    # Operational limits
    max_leads_per_search: int = 100
    search_rate_limit_per_minute: int = 10
    checkout_rate_limit_per_minute: int = 5

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
