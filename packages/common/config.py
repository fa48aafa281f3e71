"""Application configuration using pydantic-settings."""

from functools import lru_cache

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from packages.common.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DECKIMPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Local store
    store_path: str = Field(
        default="deck_import.db",
        description="SQLite file used as the local card store",
    )

    # Remote backend
    api_url: str | None = Field(
        default=None,
        description="Base URL of the REST backend; local store is used when unset",
    )
    api_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for a single REST request",
    )
    api_page_size: int = Field(
        default=500,
        description="Cards requested per page when listing backend cards",
    )
    upload_filename: str = Field(
        default="deck.apkg",
        description="Filename reported to the backend with each bulk import",
    )

    # Import pipeline
    batch_size: int = Field(
        default=100,
        description="Cards written per persistence batch",
    )
    default_ease_factor: int = Field(
        default=2500,
        description="Ease factor (permille) assumed for cards that have none",
    )
    allow_empty_revlog: bool = Field(
        default=False,
        description="Accept decks without any review history instead of failing",
    )

    # Frequency ranks
    frequency_path: str | None = Field(
        default=None,
        description="Path to the word frequency spreadsheet (.xlsx)",
    )
    frequency_sheet_index: int = Field(
        default=1,
        description="Zero-based index of the sheet holding the frequency list",
    )

    debug: bool = Field(default=False, description="Debug mode")

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str | None) -> str | None:
        """Validate backend URL format."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_url must be an HTTP(S) URL")
        return v.rstrip("/")

    @field_validator("batch_size", "api_page_size", "default_ease_factor")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate integer settings that must be positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("api_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate the request timeout."""
        if v <= 0:
            raise ValueError("api_timeout_seconds must be positive")
        return v

    @field_validator("frequency_sheet_index")
    @classmethod
    def validate_sheet_index(cls, v: int) -> int:
        """Validate the sheet index."""
        if v < 0:
            raise ValueError("frequency_sheet_index must not be negative")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_settings(**overrides: object) -> Settings:
    """Environment settings with explicit overrides applied on top.

    Overrides set to None are ignored.

    Raises:
        ConfigurationError: If the combined values do not validate.
    """
    values = get_settings().model_dump()
    values.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return Settings.model_validate(values)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration: {exc}",
            context={"fields": [".".join(map(str, err["loc"])) for err in exc.errors()]},
        ) from exc
