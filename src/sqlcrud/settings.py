"""Database settings for sqlcrud.

``DatabaseSettings`` gathers what :meth:`sqlcrud.connection.Connection.connect`
needs to build an engine: the URL, SQL echo and pool sizing, plus the log
configuration applied by :meth:`DatabaseSettings.configure_logging`. Values
come from keyword arguments, ``SQLCRUD_*`` environment variables or a
``.env`` file, in that order.

Examples:
    >>> from sqlcrud.settings import DatabaseSettings
    >>> settings = DatabaseSettings(url="postgresql://app:secret@db/app", pool_size=5)
    >>> settings.engine_kwargs()
    {'echo': False, 'pool_size': 5}

    A service with its own prefix:

    >>> class OrdersSettings(DatabaseSettings):
    ...     model_config = SettingsConfigDict(env_prefix="ORDERS_DB_")

Tags:
    settings, configuration, pydantic, environment, sqlcrud
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sqlcrud.logging import configure_logging


class DatabaseSettings(BaseSettings):
    """Connection and logging settings.

    Fields
    ──────
    url           : SQLAlchemy URL; sync schemes are mapped onto async drivers
    echo          : Log every SQL statement through SQLAlchemy
    pool_size     : Pool size for server databases (ignored for SQLite)
    max_overflow  : Connections allowed above ``pool_size``
    pool_timeout  : Seconds to wait for a pooled connection
    log_level     : structlog log level
    log_json      : JSON log output; ``None`` auto-detects from the tty
    """

    model_config = SettingsConfigDict(
        env_prefix="SQLCRUD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    url: str = Field(
        default="sqlite+aiosqlite:///:memory:",
        description="Database URL",
    )
    echo: bool = False
    pool_size: int | None = Field(default=None, ge=1)
    max_overflow: int | None = Field(default=None, ge=0)
    pool_timeout: int | None = Field(default=None, ge=1)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    @field_validator("url")
    @classmethod
    def _url_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("url must not be blank")
        return value.strip()

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return level

    def engine_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for :func:`sqlcrud.engine.create_engine`."""
        kwargs: dict[str, Any] = {"echo": self.echo}
        for name in ("pool_size", "max_overflow", "pool_timeout"):
            value = getattr(self, name)
            if value is not None:
                kwargs[name] = value
        return kwargs

    def configure_logging(self, service: str = "sqlcrud") -> None:
        """Configure structlog from ``log_level`` and ``log_json``.

        The library never configures logging on its own; applications call
        this once at startup.
        """
        configure_logging(level=self.log_level, json_format=self.log_json, service=service)
