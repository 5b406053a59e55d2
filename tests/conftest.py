"""
Shared pytest fixtures for sqlcrud tests.

This module provides:
- A connected ``Connection`` backed by a temporary SQLite file
- The ``account`` and ``purchase`` tables used by the model tests
- Model instances over those tables

Usage:
    @pytest.mark.asyncio
    async def test_something(accounts):
        await accounts.create_one({"name": "Ada", "email": "ada@example.com"})
"""

import sys
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table

# Ensure sqlcrud package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sqlcrud.connection import Connection
from sqlcrud.models import BaseModel, KeyModel


ACCOUNT_FIELDS = ["key", "name", "email", "status"]
PURCHASE_FIELDS = ["key", "account_key", "total"]

metadata = MetaData()

account_table = Table(
    "account",
    metadata,
    Column("key", Integer, primary_key=True),
    Column("name", String, nullable=False),
    Column("email", String, nullable=False, unique=True),
    Column("status", String, nullable=True),
)

purchase_table = Table(
    "purchase",
    metadata,
    Column("key", Integer, primary_key=True),
    Column("account_key", Integer, ForeignKey("account.key"), nullable=False),
    Column("total", Integer, nullable=False),
)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """URL of a fresh SQLite database file."""
    return f"sqlite:///{tmp_path / 'sqlcrud.db'}"


@pytest_asyncio.fixture
async def connection(database_url: str):
    """Connected Connection with the test tables created."""
    conn = Connection()
    await conn.connect(database_url)
    async with conn.engine.begin() as transaction:
        await transaction.run_sync(metadata.create_all)
    yield conn
    while conn.reference_count:
        await conn.disconnect()


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def accounts(connection: Connection) -> KeyModel[int]:
    return KeyModel(connection, "account", ACCOUNT_FIELDS)


@pytest.fixture
def purchases(connection: Connection) -> BaseModel:
    return BaseModel(connection, "purchase", PURCHASE_FIELDS)


@pytest_asyncio.fixture
async def seeded_accounts(accounts: KeyModel[int]) -> list[dict]:
    """Three accounts: two active, one deleted."""
    created = await accounts.create(
        [
            {"key": 1, "name": "Ada", "email": "ada@example.com", "status": "active"},
            {"key": 2, "name": "Brian", "email": "brian@example.com", "status": "active"},
            {"key": 3, "name": "Carla", "email": "carla@example.com", "status": "deleted"},
        ]
    )
    return sorted(created, key=lambda entity: entity["key"])
