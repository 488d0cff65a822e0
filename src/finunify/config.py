"""Configuration management for FinUnify."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # OpenAI API (only needed for document extraction)
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    extraction_timeout: float = 60.0  # seconds per extraction request

    # Import settings
    review_confidence_threshold: int = 80  # Below this, imports need review

    # Seed default categories, accounts and rules into an empty ledger
    seed_defaults: bool = True

    # Database path
    database_path: Path = Path.home() / ".finunify" / "finunify.db"

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        if str(self.database_path) != ":memory:":
            self.database_path.parent.mkdir(parents=True, exist_ok=True)

    def require_openai_key(self) -> str:
        """Return the OpenAI key or fail with a helpful message."""
        if not self.openai_api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY is not set. Add it to your .env file to import documents."
            )
        return self.openai_api_key


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check your .env file "
            f"against .env.example.\n"
            f"Error: {e}"
        ) from e
