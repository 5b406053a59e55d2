"""Connection manager -- a reference-counted handle around one ``AsyncEngine``.

Every model is constructed with a :class:`Connection`. The engine is
created lazily by the first ``connect()`` and disposed by the matching last
``disconnect()``, so independent components of one process can each
``connect()`` / ``disconnect()`` without closing the engine under another
component's in-flight queries.

Usage
-----
::

    from sqlcrud.connection import Connection

    connection = Connection()

    info = await connection.connect("postgresql://app:secret@db/app")
    print(info)
    # ConnectionInfo(backend='postgresql', driver='asyncpg', url='postgresql+asyncpg://app:***@db/app')

    async def transfer(transaction):
        await accounts.modify_by_key(1, {"balance": 0}, ModifyOptions(transaction=transaction))
        await accounts.modify_by_key(2, {"balance": 100}, ModifyOptions(transaction=transaction))

    await connection.transaction(transfer)
    await connection.disconnect()

    # Scoped acquisition
    async with connection.connected("sqlite:///app.db"):
        ...

Design
------
``transaction(fn, existing)`` either reuses ``existing`` (no new
transaction, so calls compose) or opens ``engine.begin()``, which commits
when ``fn`` returns and rolls back when it raises.

Tags:
    sqlcrud, connection, transaction, reference-counting
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from sqlcrud.engine import create_engine, normalize_database_url
from sqlcrud.errors import ConnectionProtocolError, NotConnectedError
from sqlcrud.logging import get_logger
from sqlcrud.settings import DatabaseSettings

logger = get_logger(__name__)

T = TypeVar("T")


# ── ConnectionInfo ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ConnectionInfo:
    """Metadata about an open connection."""

    backend: str
    """Backend identifier: ``"sqlite"``, ``"postgresql"``, etc."""

    driver: str
    """DBAPI driver name: ``"aiosqlite"``, ``"asyncpg"``, etc."""

    url: str
    """The normalized URL, with the password masked."""

    def __repr__(self) -> str:
        return f"ConnectionInfo(backend={self.backend!r}, driver={self.driver!r}, url={self.url!r})"

    @property
    def is_sqlite(self) -> bool:
        return self.backend == "sqlite"

    @property
    def is_postgres(self) -> bool:
        return self.backend == "postgresql"


def _connection_info(url: str) -> ConnectionInfo:
    parsed = make_url(url)
    return ConnectionInfo(
        backend=parsed.get_backend_name(),
        driver=parsed.get_driver_name(),
        # re-rendering percent-encodes the database part (":memory:")
        url=parsed.render_as_string(hide_password=True) if parsed.password else url,
    )


# ── Connection ───────────────────────────────────────────────────────────


class Connection:
    """Reference-counted owner of the process' database engine.

    ``connect()`` creates the engine on the 0 → 1 transition only;
    ``disconnect()`` disposes it on the 1 → 0 transition only. Calling
    ``disconnect()`` at 0 raises :class:`ConnectionProtocolError`.
    """

    def __init__(self) -> None:
        self._engine: AsyncEngine | None = None
        self._info: ConnectionInfo | None = None
        self._semaphore = 0

    @property
    def engine(self) -> AsyncEngine:
        """The connected engine; raises :class:`NotConnectedError` before ``connect()``."""
        if self._engine is None:
            raise NotConnectedError()
        return self._engine

    @property
    def info(self) -> ConnectionInfo:
        if self._info is None:
            raise NotConnectedError()
        return self._info

    @property
    def reference_count(self) -> int:
        return self._semaphore

    def is_connected(self) -> bool:
        return self._engine is not None

    async def connect(
        self,
        settings: DatabaseSettings | str | None = None,
        **engine_kwargs: Any,
    ) -> ConnectionInfo:
        """Open the engine if needed and take a reference to it.

        Args:
            settings: ``DatabaseSettings``, a URL, or ``None`` for settings
                read from the environment
            **engine_kwargs: Overrides for :func:`sqlcrud.engine.create_engine`

        Returns:
            Metadata of the (possibly pre-existing) connection
        """
        if self._semaphore == 0:
            if not isinstance(settings, DatabaseSettings):
                settings = DatabaseSettings() if settings is None else DatabaseSettings(url=settings)
            kwargs = {**settings.engine_kwargs(), **engine_kwargs}
            url = normalize_database_url(settings.url)
            self._engine = create_engine(url, **kwargs)
            self._info = _connection_info(url)
            logger.info("connection_opened", backend=self._info.backend, url=self._info.url)

        self._semaphore += 1
        logger.debug("connection_acquired", reference_count=self._semaphore)
        return self.info

    async def disconnect(self) -> None:
        """Release a reference; dispose the engine when none remain."""
        if self._semaphore == 0:
            raise ConnectionProtocolError()

        self._semaphore -= 1
        logger.debug("connection_released", reference_count=self._semaphore)

        if self._semaphore > 0:
            return

        engine, self._engine = self._engine, None
        self._info = None
        if engine is not None:
            await engine.dispose()
        logger.info("connection_closed")

    @asynccontextmanager
    async def connected(
        self,
        settings: DatabaseSettings | str | None = None,
        **engine_kwargs: Any,
    ) -> AsyncIterator[ConnectionInfo]:
        """Hold a reference for the duration of an ``async with`` block."""
        info = await self.connect(settings, **engine_kwargs)
        try:
            yield info
        finally:
            await self.disconnect()

    async def transaction(
        self,
        callback: Callable[[AsyncConnection], Awaitable[T]],
        transaction: AsyncConnection | None = None,
    ) -> T:
        """Run ``callback`` in ``transaction``, or in a new one if none is given.

        A new transaction commits when ``callback`` returns and rolls back
        when it raises; the exception propagates either way.
        """
        if transaction is not None:
            return await callback(transaction)

        async with self.engine.begin() as new_transaction:
            return await callback(new_transaction)


__all__ = [
    "Connection",
    "ConnectionInfo",
]
