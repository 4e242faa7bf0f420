"""Application configuration from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "CourtGrid"
    debug: bool = True
    secret_key: str = "dev-secret-change-in-production"
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Database
    database_url: str = "postgresql+asyncpg://courtgrid:courtgrid@db:5432/courtgrid"
    database_echo: bool = False

    # Vendor auth
    access_token_expire_minutes: int = 60 * 12
    jwt_algorithm: str = "HS256"

    # Stripe (test mode)
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    # Wall-clock zone used for "today" (past-date checks) and discount windows
    timezone: str = "America/Toronto"

    # Tenant fallback for legacy callers that send no facility identifier.
    # Unset disables the fallback.
    default_facility_slug: str | None = None

    # Bounded retries for the admission check-then-insert under contention
    admission_max_retries: int = 3
    admission_retry_backoff_seconds: float = 0.05

    model_config = {"env_prefix": "CG_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
