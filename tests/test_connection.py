"""Tests for sqlcrud.connection module."""

import pytest
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncEngine

from sqlcrud.connection import Connection, ConnectionInfo, _connection_info
from sqlcrud.errors import ConnectionProtocolError, NotConnectedError
from sqlcrud.executor import execute
from sqlcrud.settings import DatabaseSettings

from conftest import account_table


class TestReferenceCounting:
    @pytest.mark.asyncio
    async def test_engine_before_connect(self):
        connection = Connection()
        assert connection.is_connected() is False
        with pytest.raises(NotConnectedError):
            connection.engine

    @pytest.mark.asyncio
    async def test_connect_creates_engine_once(self):
        connection = Connection()

        first = await connection.connect("memory")
        engine = connection.engine
        second = await connection.connect("sqlite:///ignored.db")

        assert isinstance(engine, AsyncEngine)
        assert connection.engine is engine
        assert connection.reference_count == 2
        assert first == second
        assert first.backend == "sqlite"
        assert first.driver == "aiosqlite"

        await connection.disconnect()
        await connection.disconnect()

    @pytest.mark.asyncio
    async def test_engine_disposed_on_last_disconnect(self):
        connection = Connection()
        await connection.connect("memory")
        await connection.connect("memory")

        await connection.disconnect()
        assert connection.is_connected() is True
        assert connection.reference_count == 1

        await connection.disconnect()
        assert connection.is_connected() is False
        assert connection.reference_count == 0

    @pytest.mark.asyncio
    async def test_disconnect_before_connect(self):
        connection = Connection()
        with pytest.raises(ConnectionProtocolError, match="Disconnect invoked before connect."):
            await connection.disconnect()

    @pytest.mark.asyncio
    async def test_extra_disconnect(self):
        connection = Connection()
        await connection.connect("memory")
        await connection.disconnect()
        with pytest.raises(ConnectionProtocolError):
            await connection.disconnect()

    @pytest.mark.asyncio
    async def test_reconnect_after_disconnect(self):
        connection = Connection()
        await connection.connect("memory")
        first_engine = connection.engine
        await connection.disconnect()

        await connection.connect("memory")
        assert connection.engine is not first_engine
        await connection.disconnect()


class TestConnectArguments:
    @pytest.mark.asyncio
    async def test_settings_object(self, tmp_path):
        connection = Connection()
        info = await connection.connect(DatabaseSettings(url=f"sqlite:///{tmp_path / 'a.db'}", echo=True))
        assert connection.engine.echo is True
        assert info.is_sqlite
        await connection.disconnect()

    @pytest.mark.asyncio
    async def test_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("SQLCRUD_URL", "memory")
        connection = Connection()
        info = await connection.connect()
        assert (info.backend, info.driver) == ("sqlite", "aiosqlite")
        assert info.url == "sqlite+aiosqlite:///:memory:"
        await connection.disconnect()

    @pytest.mark.asyncio
    async def test_engine_kwargs_override_settings(self):
        connection = Connection()
        await connection.connect(DatabaseSettings(url="memory", echo=False), echo=True)
        assert connection.engine.echo is True
        await connection.disconnect()


class TestConnectionInfo:
    def test_properties(self):
        info = ConnectionInfo(backend="postgresql", driver="asyncpg", url="postgresql+asyncpg://app:***@db/app")
        assert info.is_postgres
        assert not info.is_sqlite
        assert "asyncpg" in repr(info)

    def test_password_is_masked(self):
        info = _connection_info("postgresql+asyncpg://app:secret@db/app")
        assert info.url == "postgresql+asyncpg://app:***@db/app"
        assert (info.backend, info.driver) == ("postgresql", "asyncpg")

    def test_url_without_password_is_kept_verbatim(self):
        assert _connection_info("sqlite+aiosqlite:///:memory:").url == "sqlite+aiosqlite:///:memory:"


class TestConnected:
    @pytest.mark.asyncio
    async def test_scoped_acquisition(self):
        connection = Connection()
        async with connection.connected("memory") as info:
            assert info.backend == "sqlite"
            assert connection.reference_count == 1
            async with connection.connected():
                assert connection.reference_count == 2
            assert connection.reference_count == 1
        assert connection.is_connected() is False

    @pytest.mark.asyncio
    async def test_disconnects_on_error(self):
        connection = Connection()
        with pytest.raises(RuntimeError):
            async with connection.connected("memory"):
                raise RuntimeError("boom")
        assert connection.reference_count == 0


class TestTransaction:
    @pytest.mark.asyncio
    async def test_commits_on_success(self, connection):
        async def create(transaction):
            await execute(connection, insert(account_table).values(name="Ada", email="ada@example.com"), transaction)
            return "done"

        assert await connection.transaction(create) == "done"
        assert len(await execute(connection, select(account_table))) == 1

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, connection):
        async def create_then_fail(transaction):
            await execute(connection, insert(account_table).values(name="Ada", email="ada@example.com"), transaction)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await connection.transaction(create_then_fail)

        assert await execute(connection, select(account_table)) == []

    @pytest.mark.asyncio
    async def test_reuses_existing_transaction(self, connection):
        seen = []

        async def inner(transaction):
            seen.append(transaction)

        async def outer(transaction):
            await connection.transaction(inner, transaction)
            return transaction

        outer_transaction = await connection.transaction(outer)
        assert seen == [outer_transaction]

    @pytest.mark.asyncio
    async def test_inner_failure_rolls_back_outer(self, connection):
        async def inner(transaction):
            await execute(connection, insert(account_table).values(name="Ada", email="ada@example.com"), transaction)
            raise ValueError("inner")

        async def outer(transaction):
            await connection.transaction(inner, transaction)

        with pytest.raises(ValueError):
            await connection.transaction(outer)

        assert await execute(connection, select(account_table)) == []
