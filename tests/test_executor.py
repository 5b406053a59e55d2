"""Tests for sqlcrud.executor module."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import sqlalchemy.exc
from sqlalchemy import Integer, String, column, delete, insert, select, table
from sqlalchemy.dialects import sqlite

from sqlcrud.errors import (
    MultipleRowsFoundError,
    RowNotFoundError,
    UniqueConstraintViolationError,
)
from sqlcrud.executor import (
    classify_database_error,
    execute,
    execute_count,
    execute_exists,
    execute_single,
    sqlstate_of,
    to_sql_string,
)

from conftest import account_table


# =============================================================================
# Fake driver errors
# =============================================================================


class FakeAsyncpgError(Exception):
    """Stands in for asyncpg.exceptions.UniqueViolationError."""

    def __init__(self, detail, table_name="account", constraint_name="account_email_key"):
        super().__init__("duplicate key value violates unique constraint")
        self.detail = detail
        self.table_name = table_name
        self.constraint_name = constraint_name


class FakeAdaptedError(Exception):
    """Stands in for SQLAlchemy's adapted asyncpg DBAPI error."""

    def __init__(self, sqlstate, native=None):
        super().__init__("duplicate key value violates unique constraint")
        self.sqlstate = sqlstate
        self.__cause__ = native


def wrapped(orig) -> sqlalchemy.exc.IntegrityError:
    return sqlalchemy.exc.IntegrityError("INSERT INTO account ...", {}, orig)


def asyncpg_unique_violation(detail="Key (email)=(ada@example.com) already exists."):
    return wrapped(FakeAdaptedError("23505", FakeAsyncpgError(detail)))


class TestClassifyDatabaseError:
    def test_asyncpg_unique_violation(self):
        error = asyncpg_unique_violation()
        classified = classify_database_error(error)

        assert isinstance(classified, UniqueConstraintViolationError)
        assert classified.fields == ["email"]
        assert classified.values == ["ada@example.com"]
        assert classified.table_name == "account"
        assert classified.constraint == "account_email_key"
        assert classified.cause is error

    def test_psycopg_unique_violation(self):
        orig = Exception("duplicate key")
        orig.pgcode = "23505"
        orig.diag = SimpleNamespace(
            message_detail="Key (name, email)=(Ada, ada@example.com) already exists.",
            table_name="account",
            constraint_name="account_name_email_key",
        )
        classified = classify_database_error(wrapped(orig))

        assert classified.fields == ["name", "email"]
        assert classified.constraint == "account_name_email_key"

    def test_other_sqlstate_is_not_classified(self):
        error = wrapped(FakeAdaptedError("23503", FakeAsyncpgError("Key (account_key)=(9) is not present.")))
        assert sqlstate_of(error) == "23503"
        assert classify_database_error(error) is None

    def test_unparseable_detail_is_not_classified(self):
        assert classify_database_error(asyncpg_unique_violation("something else")) is None

    def test_error_without_sqlstate(self):
        error = wrapped(Exception("UNIQUE constraint failed: account.email"))
        assert sqlstate_of(error) is None
        assert classify_database_error(error) is None


class TestExecuteWithFakeTransaction:
    """Classification on the execute path, without a database."""

    @pytest.mark.asyncio
    async def test_unique_violation_is_raised_classified(self):
        error = asyncpg_unique_violation()
        transaction = MagicMock()
        transaction.execute = AsyncMock(side_effect=error)

        with pytest.raises(UniqueConstraintViolationError) as exc_info:
            await execute(MagicMock(), select(account_table), transaction)

        assert exc_info.value.__cause__ is error
        assert exc_info.value.details["email"].input == "ada@example.com"

    @pytest.mark.asyncio
    async def test_unrecognized_error_propagates_unchanged(self):
        error = wrapped(FakeAdaptedError("22P02"))
        transaction = MagicMock()
        transaction.execute = AsyncMock(side_effect=error)

        with pytest.raises(sqlalchemy.exc.IntegrityError) as exc_info:
            await execute(MagicMock(), select(account_table), transaction)

        assert exc_info.value is error


class TestExecute:
    @pytest.mark.asyncio
    async def test_returns_rows_as_dicts(self, connection):
        await execute(connection, insert(account_table).values(key=1, name="Ada", email="ada@example.com"))

        rows = await execute(connection, select(account_table.c.key, account_table.c.name))

        assert rows == [{"key": 1, "name": "Ada"}]
        assert isinstance(rows[0], dict)

    @pytest.mark.asyncio
    async def test_statement_without_rows(self, connection):
        rows = await execute(connection, delete(account_table))
        assert rows == []

    @pytest.mark.asyncio
    async def test_runs_on_given_transaction(self, connection):
        async with connection.engine.connect() as conn:
            transaction = await conn.begin()
            await execute(connection, insert(account_table).values(name="Ada", email="ada@example.com"), conn)
            await transaction.rollback()

        assert await execute(connection, select(account_table)) == []

    @pytest.mark.asyncio
    async def test_sqlite_unique_violation_propagates(self, connection):
        statement = insert(account_table).values(name="Ada", email="ada@example.com")
        await execute(connection, statement)

        with pytest.raises(sqlalchemy.exc.IntegrityError):
            await execute(connection, statement)


class TestExecuteSingle:
    @pytest.mark.asyncio
    async def test_single_row(self, connection):
        row = await execute_single(
            connection,
            insert(account_table).values(name="Ada", email="ada@example.com").returning(account_table.c.name),
        )
        assert row == {"name": "Ada"}

    @pytest.mark.asyncio
    async def test_no_rows(self, connection):
        with pytest.raises(RowNotFoundError):
            await execute_single(connection, select(account_table))

    @pytest.mark.asyncio
    async def test_multiple_rows_rolls_back(self, connection):
        statement = (
            insert(account_table)
            .values([
                {"name": "Ada", "email": "ada@example.com"},
                {"name": "Brian", "email": "brian@example.com"},
            ])
            .returning(account_table.c.key)
        )

        with pytest.raises(MultipleRowsFoundError):
            await execute_single(connection, statement)

        assert await execute(connection, select(account_table)) == []


class TestCountAndExists:
    @pytest.mark.asyncio
    async def test_count(self, connection):
        await execute(
            connection,
            insert(account_table).values([
                {"name": "Ada", "email": "ada@example.com", "status": "active"},
                {"name": "Brian", "email": "brian@example.com", "status": "active"},
                {"name": "Carla", "email": "carla@example.com", "status": "deleted"},
            ]),
        )

        active = select(account_table).where(account_table.c.status == "active")
        assert await execute_count(connection, active) == 2
        assert await execute_count(connection, select(account_table)) == 3

    @pytest.mark.asyncio
    async def test_exists(self, connection):
        assert await execute_exists(connection, select(account_table)) is False
        await execute(connection, insert(account_table).values(name="Ada", email="ada@example.com"))
        assert await execute_exists(connection, select(account_table)) is True


class TestToSqlString:
    account = table("account", column("key", Integer), column("name", String))

    def test_single_statement(self):
        sql = to_sql_string(select(self.account.c.name).where(self.account.c.key == 1))
        assert sql == "SELECT account.name \nFROM account \nWHERE account.key = 1"

    def test_statements_are_separated_by_blank_line(self):
        sql = to_sql_string([
            insert(self.account).values(name="Ada"),
            delete(self.account),
        ])
        assert sql == "INSERT INTO account (name) VALUES ('Ada')\n\nDELETE FROM account"

    def test_other_dialect(self):
        sql = to_sql_string(select(self.account.c.name).limit(5), dialect=sqlite.dialect())
        assert "LIMIT 5" in sql
