"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Builder settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="EMR_TEMPLATES_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Schema defaults
    schema_version: int = 1
    default_section_code: str = "NEW_SECTION"

    # Validation
    min_template_name_length: int = 3

    # Version ledger notes
    edit_in_place_note: str = "Edited in place"
    restore_note_template: str = "Restored from v{version}"
    archive_note: str = "Archived"

    # Logging
    log_level: str = "INFO"

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
