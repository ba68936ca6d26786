"""Application settings loaded from environment variables and .env files."""
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "dev-secret-change-me"


class Settings(BaseSettings):
    """
    Runtime configuration.

    Every field can be overridden with a ``KANBAN_`` prefixed environment
    variable, e.g. ``KANBAN_DATABASE_URL=postgresql://...``.
    """

    model_config = SettingsConfigDict(env_prefix="KANBAN_", env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./kanban.db"
    environment: str = "development"  # development, test, production
    log_level: str = "INFO"

    # Bearer tokens
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 7 * 24 * 60

    # Password reset flow
    reset_token_expire_minutes: int = 10
    frontend_base_url: str = "http://localhost:3001"

    # Seconds to wait for another reorder on the same project before giving up
    reorder_lock_timeout: float = 5.0

    auto_create_tables: bool = True

    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
        "http://localhost:5173",
    ]

    @model_validator(mode="after")
    def _require_secret_in_production(self) -> "Settings":
        if self.is_production and self.jwt_secret == DEFAULT_JWT_SECRET:
            raise ValueError("KANBAN_JWT_SECRET must be set in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
