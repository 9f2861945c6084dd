"""
Application configuration. Loads from environment variables.
Secrets must never be hardcoded; SECRET_KEY has no usable default.
"""
import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """Application settings loaded from environment."""

    def __init__(self):
        # Database
        self.database_url: str = os.getenv(
            "DATABASE_URL", "postgresql://localhost:5432/tracker_dev"
        )

        # Security
        self.secret_key: str = os.getenv("SECRET_KEY", "")
        self.access_token_expire_minutes: int = int(
            os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720")
        )

        # One-time login codes
        self.otp_ttl_seconds: int = int(os.getenv("OTP_TTL_SECONDS", "300"))
        self.otp_max_attempts: int = int(os.getenv("OTP_MAX_ATTEMPTS", "5"))

        # HTTP
        self.cors_origins: list[str] = _csv(
            os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
        )
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
