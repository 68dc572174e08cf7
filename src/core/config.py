# src/core/config.py
import logging
from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application and security layer settings"""
    APP_NAME: str = "Residency Club API"
    ENV: str = "development"
    DEBUG: bool = False

    # Token signing
    JWT_SECRET: Optional[str] = Field(default=None)
    JWT_REFRESH_SECRET: Optional[str] = Field(default=None)
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_TTL_MINUTES: int = 15
    REFRESH_TOKEN_TTL_DAYS: int = 7

    # Sessions and CSRF
    SESSION_TTL_HOURS: int = 24
    CSRF_TOKEN_TTL_MINUTES: int = 60
    CSRF_SINGLE_USE: bool = False

    # Audit forwarding
    SECURITY_WEBHOOK: Optional[str] = Field(default=None)
    SECURITY_WEBHOOK_TIMEOUT: float = 5.0

    # Shared store for multi-instance deployments
    REDIS_URL: Optional[str] = Field(default=None)

    # Rate limiting (fixed window, per client IP)
    AUTH_RATE_LIMIT: str = "5/15minutes"
    API_RATE_LIMIT: str = "100/15minutes"
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # Number of reverse proxies in front of the app that append to
    # X-Forwarded-For. 0 means the socket address is the client IP.
    TRUSTED_PROXY_COUNT: int = 0

    # Maintenance
    CLEANUP_INTERVAL_SECONDS: int = 3600

    # Input sanitization
    MAX_INPUT_LENGTH: int = 10_000

    CORS_ORIGINS: List[str] = Field(default_factory=lambda: [
        "http://localhost:5000",
        "http://127.0.0.1:5000",
    ])

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"
    }

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"


# Settings as singleton
settings = Settings()


def validate_required_settings(current: Optional[Settings] = None) -> bool:
    """Check security settings and warn about unsafe defaults (never exits)"""
    current = current or settings
    missing = []

    if not current.JWT_SECRET:
        missing.append("JWT_SECRET")

    if not current.JWT_REFRESH_SECRET:
        missing.append("JWT_REFRESH_SECRET")

    if missing:
        logger.warning(f"Missing environment variables: {', '.join(missing)}")
        logger.warning("Random per-process secrets will be used - tokens will not survive a restart "
                       "and will not verify across instances.")
        return False

    if current.is_production and not current.REDIS_URL:
        logger.warning("REDIS_URL not set in production - blacklist, sessions and CSRF tokens "
                       "are local to this process.")

    return True
