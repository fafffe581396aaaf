"""Configuration management for household-split."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError
from .models import ReimbursementPolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Household backend (optional, only needed for remote commands)
    backend_url: str | None = None
    backend_api_key: str | None = None
    household_id: str | None = None

    # Balance settings
    reimbursement_policy: ReimbursementPolicy = "simple"

    # Display settings
    currency_symbol: str = "$"

    # Database path
    database_path: Path = Path.home() / ".household_split" / "household_split.db"

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def has_backend(self) -> bool:
        """True when enough is configured to talk to the household backend."""
        return bool(self.backend_url and self.backend_api_key and self.household_id)

    def require_backend(self) -> None:
        """Raise if backend settings are missing."""
        if not self.has_backend:
            raise ConfigurationError(
                "Backend access requires BACKEND_URL, BACKEND_API_KEY and "
                "HOUSEHOLD_ID to be set (in the environment or a .env file)."
            )


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check your environment and .env file.\n"
            f"Error: {e}"
        ) from e
