"""Generic model -- statement builders for one table.

:class:`Model` knows a table's name and columns and turns filter
expressions, values and options into SQLAlchemy Core statements. It never
executes anything; :class:`~sqlcrud.models.base.BaseModel` adds the CRUD
operations on top.

Architecture::

    ┌────────────────────────────────────────────────────────────────────┐
    │                            Model                                   │
    │                                                                    │
    │   connection: Connection     table_name: str    field_names: tuple │
    │                                                                    │
    │   insert_query_builder(values, InsertOptions)        → Insert      │
    │   select_query_builder(filter, SelectOptions)        → Select      │
    │   update_query_builder(filter, values, UpdateOptions)→ Update      │
    │   delete_query_builder(filter, DeleteOptions)        → Delete      │
    │   join_query_modifier(select, column, foreign_column)→ Select      │
    └────────────────────────────────────────────────────────────────────┘

Usage:
    >>> users = Model(connection, "user", ["key", "name", "email"])
    >>> statement = users.select_query_builder(
    ...     {"!email": None},
    ...     SelectOptions(order_by=(OrderBy("name"),), page=Page(size=10, number=3)),
    ... )
    >>> print(to_sql_string(statement))
    SELECT "user".key, "user".name, "user".email
    FROM "user"
    WHERE "user".email IS NOT NULL ORDER BY "user".name ASC
     LIMIT 10 OFFSET 20

The builders return ordinary statements, so callers can keep chaining
(``.where()``, ``.group_by()``, ``.with_for_update()``) before executing.

Tags:
    sqlcrud, model, query-builder, sqlalchemy
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from sqlalchemy import column, delete, insert, literal, literal_column, null, select, table, update
from sqlalchemy.sql.expression import (
    ClauseElement,
    ColumnElement,
    Delete,
    FromClause,
    Insert,
    Select,
    TableClause,
    Update,
)

from sqlcrud.connection import Connection
from sqlcrud.errors import EmptyValuesError, InvalidTableNameError
from sqlcrud.filters import FilterExpression, apply_filter_expression
from sqlcrud.options import (
    DeleteOptions,
    InsertOptions,
    SelectOptions,
    UpdateOptions,
)


class Model:
    """Statement builders for a single table.

    Parameters:
        connection: Connection the model's statements run on.
        table_name: Name of the underlying table; must be non-empty.
        field_names: The table's column names, in projection order.
    """

    def __init__(self, connection: Connection, table_name: str, field_names: Iterable[str]) -> None:
        if not table_name or not isinstance(table_name, str):
            raise InvalidTableNameError(table_name)

        self.connection = connection
        self.table_name = table_name
        self.field_names: tuple[str, ...] = tuple(field_names)
        self._table = table(table_name, *(column(name) for name in self.field_names))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(table_name={self.table_name!r})"

    # -- Tables and columns ------------------------------------------------

    def table(self, alias: str | None = None) -> TableClause | FromClause:
        """The model's table, optionally aliased."""
        if alias:
            return self._table.alias(alias)
        return self._table

    @staticmethod
    def _column(source: FromClause, name: str) -> ColumnElement:
        if name in source.c:
            return source.c[name]
        return literal_column(name)

    def _returning(self, statement: Any, returning_fields: Sequence[str] | None) -> Any:
        # None: every field, []: no RETURNING clause
        if returning_fields is None:
            return statement.returning(*(self._table.c[name] for name in self.field_names))
        if not returning_fields:
            return statement
        return statement.returning(*(self._column(self._table, name) for name in returning_fields))

    @staticmethod
    def _bind(value: Any) -> Any:
        # The table's columns are untyped; take the parameter type from the value
        if value is None:
            return null()
        if isinstance(value, ClauseElement):
            return value
        return literal(value)

    def _bind_values(self, values: Mapping[str, Any]) -> dict[str, Any]:
        return {name: self._bind(value) for name, value in values.items()}

    def _missing_value(self) -> ColumnElement:
        # SQLite has no DEFAULT keyword inside VALUES
        if self.connection.is_connected() and self.connection.info.is_sqlite:
            return null()
        return literal_column("DEFAULT")

    # -- Builders ----------------------------------------------------------

    def insert_query_builder(
        self,
        values: Mapping[str, Any] | Sequence[Mapping[str, Any]],
        options: InsertOptions = InsertOptions(),
    ) -> Insert:
        """Build ``INSERT`` for one row (a mapping) or several (a sequence of mappings).

        Rows may name different columns. A column missing from a row is
        written as ``DEFAULT`` (``NULL`` on SQLite, which has no ``DEFAULT``
        inside ``VALUES``).

        Raises:
            EmptyValuesError: No rows, or an empty row, unless
                ``is_empty_values_verification_disabled`` is set.
        """
        rows = [dict(values)] if isinstance(values, Mapping) else [dict(row) for row in values]

        if not options.is_empty_values_verification_disabled and (not rows or not all(rows)):
            raise EmptyValuesError()

        statement = insert(self._table)
        rows = [row for row in rows if row]
        if len(rows) == 1:
            statement = statement.values(self._bind_values(rows[0]))
        elif rows:
            names = list(dict.fromkeys(name for row in rows for name in row))
            missing = self._missing_value()
            statement = statement.values(
                [{name: self._bind(row[name]) if name in row else missing for name in names} for row in rows],
            )

        return self._returning(statement, options.returning_fields)

    def select_query_builder(
        self,
        filter_expression: FilterExpression | None = None,
        options: SelectOptions = SelectOptions(),
    ) -> Select:
        """Build ``SELECT`` over the (optionally aliased) table.

        ``field_name_aliases`` replaces the default projection of every
        field; ``order_by`` and ``page`` add ORDER BY and LIMIT/OFFSET.
        """
        source = self.table(options.table_name_alias)

        if options.field_name_aliases:
            projection = []
            for alias, name in options.field_name_aliases.items():
                selected = self._column(source, name)
                projection.append(selected.label(alias) if alias else selected)
        else:
            projection = [source.c[name] for name in self.field_names]

        statement = select(*projection).select_from(source)
        statement = apply_filter_expression(statement, filter_expression, source.c)

        for order in options.order_by:
            ordered = self._column(source, order.column)
            statement = statement.order_by(ordered.desc() if order.direction == "desc" else ordered.asc())

        if options.page is not None:
            statement = statement.limit(options.page.size).offset(options.page.offset)

        return statement

    def update_query_builder(
        self,
        filter_expression: FilterExpression | None,
        values: Mapping[str, Any],
        options: UpdateOptions = UpdateOptions(),
    ) -> Update:
        if not options.is_empty_values_verification_disabled and not values:
            raise EmptyValuesError()

        statement = update(self._table).values(self._bind_values(values))
        statement = apply_filter_expression(statement, filter_expression, self._table.c)
        return self._returning(statement, options.returning_fields)

    def delete_query_builder(
        self,
        filter_expression: FilterExpression | None,
        options: DeleteOptions = DeleteOptions(),
    ) -> Delete:
        statement = delete(self._table)
        statement = apply_filter_expression(statement, filter_expression, self._table.c)
        return self._returning(statement, options.returning_fields)

    def join_query_modifier(
        self,
        statement: Select,
        column_name: str,
        foreign_column_name: str,
        table_name_alias: str | None = None,
    ) -> Select:
        """Join this model's table into ``statement``.

        Renders ``JOIN <table> [AS alias] ON column = foreign_column``; both
        column names are emitted verbatim, so qualify them
        (``"user.key"``, ``"orders.user_key"``).
        """
        return statement.join(
            self.table(table_name_alias),
            literal_column(column_name) == literal_column(foreign_column_name),
        )


__all__ = ["Model"]
