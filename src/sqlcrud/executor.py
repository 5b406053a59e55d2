"""
Statement execution and database error classification.

The models never touch a connection directly: every statement they build
goes through one of the executors below, which run it on the caller's
transaction (or a short one of their own), turn the rows into plain dicts
and translate recognizable driver errors into :mod:`sqlcrud.errors` types.

Architecture:
    ::

        statement ──► execute() ──► AsyncConnection.execute()
                         │                 │
                         │            DBAPIError ──► classify_database_error()
                         │                 │              │
                         │                 │      23505 + "Key (..)=(..) already exists."
                         │                 │              ▼
                         │                 │      UniqueConstraintViolationError
                         ▼                 ▼
                    list[dict]        original error (unrecognized)

        execute_single()  exactly one row, else RowNotFoundError / MultipleRowsFoundError
        execute_count()   SELECT count(*) FROM (<select>) AS counted
        execute_exists()  <select> LIMIT 1

Driver errors
-------------
SQLAlchemy wraps DBAPI errors in ``sqlalchemy.exc.DBAPIError``; ``.orig``
is the DBAPI exception. The SQLSTATE is read from ``sqlstate`` or
``pgcode`` on it; the detail line, table and constraint come from the
underlying asyncpg exception (``orig.__cause__``) or from psycopg's
``orig.diag``.

Examples:
    >>> rows = await execute(connection, users.select_query_builder({"key": 1}))
    >>> print(to_sql_string([
    ...     users.insert_query_builder({"name": "a"}, InsertOptions(returning_fields=[])),
    ...     users.delete_query_builder({"key": 1}, DeleteOptions(returning_fields=[])),
    ... ]))
    INSERT INTO "user" (name) VALUES ('a')
    <BLANKLINE>
    DELETE FROM "user" WHERE "user".key = 1

Tags:
    sqlcrud, executor, sqlalchemy, asyncpg, unique-constraint, sqlstate
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import Dialect
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.sql.expression import Executable, Select

from sqlcrud.errors import (
    MultipleRowsFoundError,
    RowNotFoundError,
    UniqueConstraintViolationError,
)
from sqlcrud.logging import get_logger

if TYPE_CHECKING:
    from sqlcrud.connection import Connection

logger = get_logger(__name__)

UNIQUE_VIOLATION = "23505"


# ── Error classification ─────────────────────────────────────────────────


def _driver_errors(error: DBAPIError) -> list[Any]:
    """The DBAPI error followed by the native driver error, if chained."""
    orig = error.orig
    errors: list[Any] = [orig]
    cause = getattr(orig, "__cause__", None)
    if cause is not None:
        errors.append(cause)
    return errors


def _first_attribute(candidates: list[Any], *names: str) -> Any:
    for candidate in candidates:
        for name in names:
            value = getattr(candidate, name, None)
            if value:
                return value
    return None


def sqlstate_of(error: DBAPIError) -> str | None:
    """Return the SQLSTATE carried by a wrapped driver error, if any."""
    return _first_attribute(_driver_errors(error), "sqlstate", "pgcode")


def classify_database_error(error: DBAPIError) -> Exception | None:
    """Map a driver error onto a :mod:`sqlcrud.errors` type.

    Returns ``None`` when the error is not recognized, in which case the
    caller re-raises the original.
    """
    if sqlstate_of(error) != UNIQUE_VIOLATION:
        return None

    candidates = _driver_errors(error)
    diag = getattr(error.orig, "diag", None)
    if diag is not None:
        candidates.append(diag)

    return UniqueConstraintViolationError.from_detail(
        _first_attribute(candidates, "detail", "message_detail"),
        table_name=_first_attribute(candidates, "table_name"),
        constraint=_first_attribute(candidates, "constraint_name"),
        cause=error,
    )


# ── Executors ────────────────────────────────────────────────────────────


async def _run(transaction: AsyncConnection, statement: Executable) -> list[dict[str, Any]]:
    try:
        result = await transaction.execute(statement)
    except DBAPIError as exc:
        classified = classify_database_error(exc)
        if classified is None:
            raise
        logger.warning(
            "statement_failed",
            error_type=type(classified).__name__,
            **classified.to_dict().get("context", {}),
        )
        raise classified from exc

    if not result.returns_rows:
        return []

    rows = [dict(row) for row in result.mappings()]
    logger.debug("statement_executed", row_count=len(rows))
    return rows


async def execute(
    connection: Connection,
    statement: Executable,
    transaction: AsyncConnection | None = None,
) -> list[dict[str, Any]]:
    """Execute ``statement`` and return its rows as dicts.

    Runs on ``transaction`` when one is given, otherwise in a transaction
    of its own that commits on success.
    """
    if transaction is not None:
        return await _run(transaction, statement)

    async with connection.engine.begin() as own_transaction:
        return await _run(own_transaction, statement)


async def execute_single(
    connection: Connection,
    statement: Executable,
    transaction: AsyncConnection | None = None,
) -> dict[str, Any]:
    """Execute ``statement`` and return its only row.

    The statement runs in a transaction, so a mutation touching zero or
    several rows is rolled back before the error is raised (unless the
    caller supplied the transaction, which it then owns).
    """

    async def single(current: AsyncConnection) -> dict[str, Any]:
        rows = await _run(current, statement)
        if not rows:
            raise RowNotFoundError()
        if len(rows) > 1:
            raise MultipleRowsFoundError()
        return rows[0]

    return await connection.transaction(single, transaction)


async def execute_count(
    connection: Connection,
    statement: Select,
    transaction: AsyncConnection | None = None,
) -> int | None:
    """Count the rows ``statement`` would return; ``None`` if no count row came back."""
    count_statement = select(func.count().label("count")).select_from(statement.subquery("counted"))
    rows = await execute(connection, count_statement, transaction)
    if not rows:
        return None
    return int(rows[0]["count"])


async def execute_exists(
    connection: Connection,
    statement: Select,
    transaction: AsyncConnection | None = None,
) -> bool:
    """Whether ``statement`` matches at least one row."""
    rows = await execute(connection, statement.limit(1), transaction)
    return len(rows) > 0


# ── Rendering ────────────────────────────────────────────────────────────


def to_sql_string(
    statements: Executable | Sequence[Executable],
    dialect: Dialect | None = None,
) -> str:
    """Render one or more statements as SQL with inlined literal values.

    Statements are separated by a blank line. PostgreSQL is assumed when no
    ``dialect`` is given. Meant for logging and debugging only.
    """
    if isinstance(statements, Executable):
        statements = [statements]
    dialect = dialect or postgresql.dialect()
    return "\n\n".join(
        str(statement.compile(dialect=dialect, compile_kwargs={"literal_binds": True}))
        for statement in statements
    )


__all__ = [
    "UNIQUE_VIOLATION",
    "sqlstate_of",
    "classify_database_error",
    "execute",
    "execute_single",
    "execute_count",
    "execute_exists",
    "to_sql_string",
]
