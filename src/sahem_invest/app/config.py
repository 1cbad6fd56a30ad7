"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from the project root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./sahem_invest.db"

    # Auth / JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 1440

    # Credentials
    temporary_password_length: int = 12
    password_reset_expiry_minutes: int = 60

    # Email (SendGrid)
    sendgrid_api_key: str = ""
    email_from: str = "noreply@notifications.saheminvest.com"
    email_from_name: str = "Sahem Invest"
    support_email: str = "support@saheminvest.com"
    admin_email: str = "admin@saheminvest.com"

    # CORS / Frontend
    cors_origins: str = "http://localhost:3000"
    frontend_url: str = "http://localhost:3000"

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

    @property
    def login_url(self) -> str:
        return f"{self.frontend_url.rstrip('/')}/auth/signin"


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
