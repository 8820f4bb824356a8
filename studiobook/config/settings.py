from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Studiobook API"
    APP_VERSION: str = "0.3.0"
    APP_ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./studiobook.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
    ]

    # Scheduling policy
    TIMEZONE: str = "Europe/Rome"
    DEFAULT_SESSION_MINUTES: int = 60
    CANCEL_NOTICE_HOURS: int = 3
    BOOKING_LEAD_MINUTES: int = 1
    SIDE_EFFECT_TIMEOUT_SECONDS: float = 10.0

    # Google Calendar mirror
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REFRESH_TOKEN: str = ""
    GOOGLE_CALENDAR_ID: str = "primary"

    # WhatsApp (Twilio)
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_WHATSAPP_FROM: str = ""  # e.g. whatsapp:+14155238886
    DEFAULT_COUNTRY_CODE: str = "+39"
    ADMIN_PHONE: str = ""

    # Session reminders
    REMINDERS_ENABLED: bool = True
    REMINDER_LEAD_MINUTES: int = 60
    REMINDER_WINDOW_MINUTES: int = 10
    REMINDER_INTERVAL_SECONDS: int = 300

    # Observability (GlitchTip/Sentry)
    GLITCHTIP_DSN: str = ""
    GLITCHTIP_TRACES_SAMPLE_RATE: float = 0.2

    @property
    def calendar_enabled(self) -> bool:
        """Check if the Google Calendar mirror is configured."""
        return bool(
            self.GOOGLE_CLIENT_ID
            and self.GOOGLE_CLIENT_SECRET
            and self.GOOGLE_REFRESH_TOKEN
        )

    @property
    def whatsapp_enabled(self) -> bool:
        """Check if WhatsApp delivery is configured."""
        return bool(
            self.TWILIO_ACCOUNT_SID
            and self.TWILIO_AUTH_TOKEN
            and self.TWILIO_WHATSAPP_FROM
        )

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
