"""Application configuration using pydantic-settings."""
from functools import lru_cache
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./bookmarks.db"

    # Redis (change notifications); falls back to in-process delivery when disabled
    redis_url: str = "redis://localhost:6379"
    redis_enabled: bool = True

    # Development mode - bypasses OAuth with a fixed local identity
    dev_mode: bool = False
    dev_user_id: str = "dev-user"
    dev_user_email: str = "dev@localhost"

    # Google OAuth
    google_client_id: str = ""
    google_client_secret: str = ""
    oauth_redirect_path: str = "/auth/callback"

    # Browser view sessions
    session_cookie_name: str = "bookmarks_session"
    cookie_secure: bool = False
    # Idle view sessions are closed after this many seconds; the count is capped
    session_idle_timeout: float = 3600.0
    max_view_sessions: int = 10_000

    log_level: str = "INFO"

    # Stored as a list; accepts a comma-separated string from the environment
    cors_origins: Annotated[list[str], NoDecode] = ["http://localhost:8000"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Split comma-separated origins and drop empty entries."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @property
    def oauth_configured(self) -> bool:
        """True when Google OAuth credentials are present."""
        return bool(self.google_client_id and self.google_client_secret)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
