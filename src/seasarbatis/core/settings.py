"""Environment-driven settings for seasarbatis.

``BatisSettings`` collects everything needed to build a
:class:`~seasarbatis.manager.JdbcManager` without code: the database
URL, engine pool sizing, the SQL-file root and logging options.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not at first query
    - **Environment-driven:** Reads ``BATIS_*`` env vars and ``.env`` files
    - **Sensible defaults:** A local SQLite file works out of the box

Examples:
    >>> import os
    >>> os.environ["BATIS_DATABASE_URL"] = "sqlite:///:memory:"
    >>> get_settings.cache_clear()
    >>> get_settings().database_url
    'sqlite:///:memory:'

Tags:
    settings, configuration, pydantic, environment, seasarbatis
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BatisSettings(BaseSettings):
    """Settings for the mapping layer.

    Fields
    ──────
    database_url   : SQLAlchemy URL of the target database
    echo           : Echo every statement through SQLAlchemy's logger
    pool_size      : Engine pool size (ignored for SQLite)
    max_overflow   : Engine pool overflow (ignored for SQLite)
    pool_timeout   : Seconds to wait for a pooled connection
    sql_file_root  : Directory that relative SQL-file references resolve against
    log_level      : Structlog log level
    json_logs      : Force JSON (True) / console (False) log rendering
    """

    model_config = SettingsConfigDict(
        env_prefix="BATIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = "sqlite:///seasarbatis.db"
    echo: bool = False
    pool_size: int | None = None
    max_overflow: int | None = None
    pool_timeout: int | None = None

    # ── SQL files ────────────────────────────────────────────────
    sql_file_root: Path = Field(
        default_factory=Path.cwd,
        description="Directory that relative SQL-file references resolve against",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return value


@lru_cache(maxsize=1)
def get_settings() -> BatisSettings:
    """Return the process-wide settings (cached; ``cache_clear()`` to reload)."""
    return BatisSettings()


__all__ = [
    "BatisSettings",
    "get_settings",
]
