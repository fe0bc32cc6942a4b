"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from the repository root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./documove.db"

    # Auth / JWT (tokens are issued by the identity service, we only verify them)
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 1440

    # Invite emails
    sendgrid_api_key: str = ""
    invite_from_email: str = "no-reply@documove.co.uk"
    invite_from_name: str = "Documove"

    # CORS / Frontend
    cors_origins: str = "http://localhost:5173"
    frontend_url: str = "https://documove.co.uk"

    # Workflow policies
    default_role: str = "agent"
    strict_role_resolution: bool = False
    unknown_stage_policy: str = "not_started"  # not_started, reject
    require_accepted_conveyancer: bool = False

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
