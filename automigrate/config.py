"""
Configuration settings for automigrate.

Uses Pydantic Settings to load environment variables for the target database,
the dialect to use, logging, and migration defaults (table options, table
naming).
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    dialect: str = Field("postgres", alias="AUTOMIGRATE_DIALECT")
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("automigrate", alias="DB_NAME")
    db_dsn: Optional[str] = Field(None, alias="DB_DSN")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")
    log_sql: bool = Field(True, alias="LOG_SQL")

    # Migration defaults
    table_options: Optional[str] = Field(None, alias="AUTOMIGRATE_TABLE_OPTIONS")
    singular_table: bool = Field(False, alias="AUTOMIGRATE_SINGULAR_TABLE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a PostgreSQL DSN string from settings (DB_DSN wins when set)."""
    settings = settings or get_settings()
    if settings.db_dsn:
        return settings.db_dsn
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


__all__ = ["Settings", "build_dsn", "get_settings"]
