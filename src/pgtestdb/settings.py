"""
pydantic-settings configuration for pgtestdb.
Values come from PGTESTDB_* environment variables, a `.env.testing` file, or the libpq PG* variables.
"""

import os

from pathlib import Path
from typing import Dict

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pgtestdb.connection_settings import DEFAULT_TIMEOUT_SECONDS, ConnectionSettings
from pgtestdb.data_source_name import DataSourceName


ENV_PREFIX = "PGTESTDB_"
ENV_FILE = ".env.testing"


class PgTestDbSettings(BaseSettings):
    """Per-suite configuration: connection target, template naming and the skip switch."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=ENV_FILE,
        env_file_encoding='utf-8',
        extra='ignore',
    )

    dsn             : str | None   = Field(default=None,  description="postgresql:// URL of the server; falls back to PGHOST/PGUSER/...")
    base_name       : str | None   = Field(default=None,  description="Prefix for template and clone database names")
    schema_file     : Path | None  = Field(default=None,  description="SQL script applied once to the template")
    skip            : bool         = Field(default=False, description="Skip every test that asks for a database")
    admin_database  : str | None   = Field(default=None,  description="Database administrative connections attach to")
    timeout_seconds : float        = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0, description="Bound on each connect and statement")
    pool_size       : int          = Field(default=5, ge=1, description="Connections kept per clone engine")
    max_overflow    : int          = Field(default=10, ge=0, description="Extra connections a clone engine may open")
    log_level       : str          = Field(default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    @model_validator(mode='after')
    def fall_back_to_libpq_env(self) -> "PgTestDbSettings":
        if not self.dsn and (libpq := DataSourceName.from_libpq_env(os.environ)) is not None:
            self.dsn = libpq.model_dump_string()
        return self

    def connection_settings(self) -> ConnectionSettings | None:
        """ConnectionSettings for the configured target, or None when no target is configured."""
        if not self.dsn:
            return None
        return ConnectionSettings.from_dsn(
            self.dsn,
            admin_database=self.admin_database,
            timeout_seconds=self.timeout_seconds,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
        )


_SETTINGS: Dict[str, PgTestDbSettings] = {}

def get_settings() -> PgTestDbSettings:
    """Cached settings instance; call `reset_settings()` after changing the environment."""
    if (settings := _SETTINGS.get("current")) is None:
        settings = _SETTINGS["current"] = PgTestDbSettings()
    return settings

def reset_settings() -> None:
    _SETTINGS.clear()
