"""Tests for sqlcrud.settings and sqlcrud.engine modules."""

from unittest.mock import patch

import pydantic
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.pool import StaticPool

from sqlcrud.engine import create_engine, normalize_database_url
from sqlcrud.settings import DatabaseSettings


class TestNormalizeDatabaseUrl:
    @pytest.mark.parametrize(
        "url, expected",
        [
            (None, "sqlite+aiosqlite:///:memory:"),
            ("", "sqlite+aiosqlite:///:memory:"),
            ("memory", "sqlite+aiosqlite:///:memory:"),
            (":memory:", "sqlite+aiosqlite:///:memory:"),
            ("sqlite:///app.db", "sqlite+aiosqlite:///app.db"),
            ("postgresql://app@db/app", "postgresql+asyncpg://app@db/app"),
            ("postgres://app@db/app", "postgresql+asyncpg://app@db/app"),
            ("postgresql://db/app?sslmode=require", "postgresql+asyncpg://db/app"),
            ("postgresql://db/app?application_name=x&sslmode=require", "postgresql+asyncpg://db/app?application_name=x"),
            ("postgresql://db/app?sslmode=require&application_name=x", "postgresql+asyncpg://db/app?application_name=x"),
            ("postgresql+asyncpg://db/app", "postgresql+asyncpg://db/app"),
            ("sqlite+aiosqlite:///app.db", "sqlite+aiosqlite:///app.db"),
        ],
    )
    def test_normalize(self, url, expected):
        assert normalize_database_url(url) == expected


class TestCreateEngine:
    @pytest.mark.asyncio
    async def test_sqlite_enables_foreign_keys(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'fk.db'}")
        assert isinstance(engine, AsyncEngine)
        try:
            async with engine.connect() as conn:
                result = await conn.exec_driver_sql("PRAGMA foreign_keys")
                assert result.scalar() == 1
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_memory_engine(self):
        engine = create_engine()
        assert engine.url.drivername == "sqlite+aiosqlite"
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_extra_kwargs_are_forwarded(self):
        engine = create_engine("memory", poolclass=StaticPool)
        assert isinstance(engine.pool, StaticPool)
        await engine.dispose()


class TestDatabaseSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("SQLCRUD_URL", raising=False)
        settings = DatabaseSettings()
        assert settings.url == "sqlite+aiosqlite:///:memory:"
        assert settings.echo is False
        assert settings.engine_kwargs() == {"echo": False}

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("SQLCRUD_URL", "postgresql://app@db/app")
        monkeypatch.setenv("SQLCRUD_POOL_SIZE", "5")
        monkeypatch.setenv("SQLCRUD_LOG_LEVEL", "debug")

        settings = DatabaseSettings()

        assert settings.url == "postgresql://app@db/app"
        assert settings.pool_size == 5
        assert settings.log_level == "DEBUG"
        assert settings.engine_kwargs() == {"echo": False, "pool_size": 5}

    def test_keyword_arguments_win(self, monkeypatch):
        monkeypatch.setenv("SQLCRUD_URL", "postgresql://app@db/app")
        assert DatabaseSettings(url="memory").url == "memory"

    @pytest.mark.parametrize(
        "kwargs",
        [{"url": "  "}, {"pool_size": 0}, {"max_overflow": -1}, {"log_level": "LOUD"}],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(pydantic.ValidationError):
            DatabaseSettings(**kwargs)

    def test_configure_logging_uses_log_settings(self, monkeypatch):
        monkeypatch.setenv("SQLCRUD_LOG_LEVEL", "warning")
        monkeypatch.setenv("SQLCRUD_LOG_JSON", "true")

        with patch("sqlcrud.settings.configure_logging") as configure:
            DatabaseSettings().configure_logging(service="orders-api")

        configure.assert_called_once_with(level="WARNING", json_format=True, service="orders-api")
