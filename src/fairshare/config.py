"""Configuration management for fairshare."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FAIRSHARE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Acting member for the CLI and MCP server
    member_id: str | None = None

    # Display settings
    currency_symbol: str = "$"

    # Tolerance for split totals and percentage sums
    split_tolerance: float = 0.01

    # Database path
    database_path: Path = Path.home() / ".fairshare" / "fairshare.db"

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def load_settings(**overrides) -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings(**overrides)
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check your FAIRSHARE_* environment "
            f"variables or .env file.\n"
            f"Error: {e}"
        ) from e
