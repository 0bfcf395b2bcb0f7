"""
Configuration for the concept store.

Values come from UMLS_MAPPER_* environment variables or a local .env file.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATABASE_URL = "sqlite:///data/.cache/umls_mapper.sqlite"


class Settings(BaseSettings):
    """Concept store settings."""

    model_config = SettingsConfigDict(
        env_prefix="UMLS_MAPPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = Field(
        default=DEFAULT_DATABASE_URL,
        description="SQLAlchemy URL of the database holding the concept tables",
    )
    table_prefix: str = Field(default="MRCONSO")
    insert_batch_size: int = Field(
        default=100_000,
        gt=0,
        description="Rows per executemany() flush while loading a table",
    )
    query_windows: int = Field(
        default=10,
        gt=0,
        description="Number of windows uncached codes are split into",
    )
    show_progress: bool = Field(default=True, description="Draw a tqdm bar while loading")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
