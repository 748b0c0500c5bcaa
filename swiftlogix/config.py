from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Backend selection: "local" (SQLAlchemy stand-in) or "supabase" (hosted)
    BACKEND: str = "local"

    # Local backend database
    DATABASE_URL: str = "sqlite:///./swiftlogix.db"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Hosted backend
    SUPABASE_URL: Optional[str] = None
    SUPABASE_KEY: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    # Lifetime of the opaque token returned by verify_tracking_number
    TRACKING_SESSION_TTL_MINUTES: int = 30

    # Cookie names
    AUTH_COOKIE: str = "sb-access-token"
    SESSION_COOKIE: str = "swl_session_id"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
