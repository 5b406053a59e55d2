"""Async SQLAlchemy engine factory.

This module provides:

* ``normalize_database_url`` -- Map a plain URL onto an async driver.
* ``create_engine``          -- Create an ``AsyncEngine`` with sane defaults.

Supported URL schemes
---------------------
==========================  ======================================  ============
Input                       Normalized                              Backend
==========================  ======================================  ============
``None`` / ``memory``       ``sqlite+aiosqlite:///:memory:``         SQLite RAM
``sqlite:///path.db``       ``sqlite+aiosqlite:///path.db``          SQLite file
``postgresql://...``        ``postgresql+asyncpg://...``             PostgreSQL
``postgres://...``          ``postgresql+asyncpg://...``             PostgreSQL
``<scheme>+<driver>://...`` unchanged                               as given
==========================  ======================================  ============

Tags:
    sqlcrud, sqlalchemy, asyncio, engine, asyncpg, aiosqlite
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import create_async_engine as _sa_create_async_engine

_MEMORY_URL = "sqlite+aiosqlite:///:memory:"


def normalize_database_url(url: str | None) -> str:
    """Normalize a database URL for the async drivers.

    Args:
        url: Database connection URL, or ``None`` / ``"memory"`` for SQLite in RAM

    Returns:
        URL naming an async driver

    Examples:
        >>> normalize_database_url("postgresql://localhost/db")
        'postgresql+asyncpg://localhost/db'

        >>> normalize_database_url("postgresql://localhost/db?sslmode=require")
        'postgresql+asyncpg://localhost/db'

        >>> normalize_database_url("sqlite:///app.db")
        'sqlite+aiosqlite:///app.db'
    """
    if url is None or url in ("", "memory", ":memory:"):
        return _MEMORY_URL

    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]

    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif url.startswith("sqlite://"):
        url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    # asyncpg takes ssl= instead of libpq's sslmode
    if url.startswith("postgresql+asyncpg://"):
        parsed = make_url(url)
        if "sslmode" in parsed.query:
            url = parsed.difference_update_query(["sslmode"]).render_as_string(hide_password=False)

    return url


def create_engine(
    url: str | None = None,
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    pool_timeout: int | None = None,
    **kwargs: Any,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql://…``, etc.); normalized
        with :func:`normalize_database_url`.
    echo:
        If ``True``, log all SQL.
    pool_size, max_overflow, pool_timeout:
        Connection pool parameters (ignored for SQLite).
    **kwargs:
        Extra arguments forwarded to ``create_async_engine``.
    """
    url = normalize_database_url(url)

    if url.startswith("sqlite"):
        engine = _sa_create_async_engine(url, echo=echo, **kwargs)

        # Foreign keys are off by default in SQLite
        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow
    if pool_timeout is not None:
        pool_kwargs["pool_timeout"] = pool_timeout

    return _sa_create_async_engine(url, echo=echo, **pool_kwargs, **kwargs)


__all__ = [
    "normalize_database_url",
    "create_engine",
]
