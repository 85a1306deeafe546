"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 4

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Frontend (portal links are built from APP_BASE_URL)
    FRONTEND_URL: str = "http://localhost:3000"
    APP_BASE_URL: str = ""

    # Cron / scheduled endpoints (monthly sessions, reminders, email dispatch, cleanup)
    CRON_SECRET: str = ""

    # Scheduling
    SCHEDULER_TIMEZONE: str = "Africa/Johannesburg"
    DEFAULT_DUE_DAY: int = 25
    DEFAULT_DUE_TIMEZONE: str = "Africa/Johannesburg"
    MONTHLY_BATCH_LIMIT: int = 500
    REMINDER_BATCH_LIMIT: int = 500
    CLEANUP_BATCH_SIZE: int = 200

    # Email outbox
    EMAIL_DISPATCH_DEFAULT_LIMIT: int = 25
    EMAIL_MAX_ATTEMPTS: int = 5
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = ""

    # Storage
    STORAGE_BACKEND: str = "local"  # local | s3
    S3_BUCKET: str = "client-uploads"
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: str = ""
    S3_URL_STYLE: str = ""  # path | virtual
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    LOCAL_STORAGE_PATH: str = "/tmp/portal-uploads"
    UPLOAD_URL_EXPIRY_SECONDS: int = 900
    DOWNLOAD_URL_EXPIRY_SECONDS: int = 300
    MAX_UPLOAD_SIZE_BYTES: int = 25 * 1024 * 1024

    # Retention windows (days)
    ACCEPTED_RETENTION_DAYS: int = 7
    DENIED_RETENTION_DAYS: int = 30
    PENDING_RETENTION_DAYS: int = 30

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_PORTAL: int = 30

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV != "dev"

    @property
    def app_base_url(self) -> str:
        return self.APP_BASE_URL.rstrip("/")


settings = Settings()
