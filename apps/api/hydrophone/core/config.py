"""Application configuration with environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TEMPLATE_PATH = str(Path(__file__).resolve().parent.parent / "assets" / "templates")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str

    # Auth: secret used by trusted peer services (and by us towards them)
    SERVER_SECRET: str = ""
    AUTH_URL: str = "http://localhost:9107"

    # Directory services
    SEAGULL_URL: str = "http://localhost:9120"  # profile / preferences
    GATEKEEPER_URL: str = "http://localhost:9123"  # care-team permissions
    CREW_URL: str = "http://localhost:9129"  # medical teams
    CLINIC_URL: str = "http://localhost:8080"
    MEDICAL_DATA_URL: str = "http://localhost:9220"
    HTTP_TIMEOUT_SECONDS: float = 10.0
    HTTP_MAX_ATTEMPTS: int = 3

    # Templates and locales
    TEMPLATE_PATH: str = DEFAULT_TEMPLATE_PATH
    PREVIEW_MODE: bool = False

    # Mail
    MAIL_PROVIDER: str = "ses"  # ses | smtp | null
    MAIL_FROM: str = "Tidepool <noreply@tidepool.org>"
    SES_REGION: str = "us-west-2"
    SES_CONFIGURATION_SET: str = ""
    MAIL_TAGS: str = ""  # "env:prod,service:hydrophone"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True

    # Links rendered into emails
    WEB_URL: str = "http://localhost:3000"
    SUPPORT_URL: str = "https://support.tidepool.org"
    ASSET_URL: str = "https://s3-us-west-2.amazonaws.com/tidepool-dev-asset"
    PATIENT_PASSWORD_RESET_URL: str = ""

    # Behaviour
    ALLOW_PATIENT_RESET_PASSWORD: bool = False
    THROTTLE_MAX_ATTEMPTS: int = 10
    THROTTLE_WINDOW_HOURS: int = 24
    EXPIRY_DEFAULT_DAYS: int = 7
    EXPIRY_SIGNUP_DAYS: int = 31
    EXPIRY_MONITORING_DAYS: int = 30
    EXPIRY_OTP_HOURS: int = 1
    MONITORING_DEFAULT_DAYS: int = 90

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute on anonymous send routes)
    RATE_LIMIT_SEND: int = 20
    REDIS_URL: str = ""  # shared limiter storage; in-memory when unset

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def mail_tags(self) -> dict[str, str]:
        """Parse MAIL_TAGS ("name:value,...") into a dict."""
        tags: dict[str, str] = {}
        for item in self.MAIL_TAGS.split(","):
            name, sep, value = item.strip().partition(":")
            if sep and name.strip():
                tags[name.strip()] = value.strip()
        return tags


settings = Settings()
