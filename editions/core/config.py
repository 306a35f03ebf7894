"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Connection strings have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # Public site used to build edition links in emails
    frontend_url: str = "http://localhost:3000"

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str  # Required, no default
    celery_broker_url: str  # Required, no default
    celery_result_backend: str  # Required, no default

    # ===========================================
    # PAYMENTS (Stripe)
    # ===========================================
    stripe_api_key: str = ""
    stripe_webhook_secret: str = ""

    # ===========================================
    # EMAIL (Resend)
    # ===========================================
    resend_api_key: str = ""
    resend_api_url: str = "https://api.resend.com"
    email_from_address: str = "Editions <editions@localhost>"
    admin_email_address: str = ""
    email_request_timeout: float = 15.0

    # ===========================================
    # ENTITLEMENT CACHE
    # ===========================================
    access_cache_ttl: int = 86400  # 24 hours
    access_cache_batch_size: int = 100
    access_cache_concurrency: int = 8

    # ===========================================
    # QUEUES & RELEASES
    # ===========================================
    notification_batch_size: int = 100
    payments_max_attempts: int = 3
    payments_backoff_seconds: int = 30
    editions_max_attempts: int = 3
    editions_backoff_seconds: int = 30
    emails_max_attempts: int = 3
    emails_backoff_seconds: int = 60
    job_dedup_ttl: int = 86400
    # crontab fields: minute hour day_of_month month day_of_week
    edition_release_cron: str = "0 9 16 * *"
    edition_release_timezone: str = "Europe/London"
    digital_access_years: int = 2

    # ===========================================
    # LOGGING
    # ===========================================
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("edition_release_cron")
    @classmethod
    def validate_release_cron(cls, v: str) -> str:
        """Crontab must have exactly five fields."""
        if len(v.split()) != 5:
            raise ValueError("edition_release_cron must have 5 space-separated fields")
        return v.strip()

    @field_validator("access_cache_batch_size", "notification_batch_size", "access_cache_concurrency")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("batch sizes and concurrency must be >= 1")
        return v

    @property
    def release_cron_fields(self) -> dict[str, str]:
        """Split edition_release_cron into celery crontab kwargs."""
        minute, hour, day_of_month, month_of_year, day_of_week = self.edition_release_cron.split()
        return {
            "minute": minute,
            "hour": hour,
            "day_of_month": day_of_month,
            "month_of_year": month_of_year,
            "day_of_week": day_of_week,
        }

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()


def get_admin_email() -> str:
    return settings.admin_email_address


def edition_link(edition_code: str) -> str:
    return f"{settings.frontend_url.rstrip('/')}/editions/{edition_code}"
