"""Filter expression compiler.

A filter expression describes a WHERE clause as plain data:

* a mapping is a conjunction -- every entry must hold;
* a list (or tuple) of mappings is a disjunction of conjunctions.

Each entry maps a field name to a scalar or to an array of scalars. A
leading ``!`` on the field name negates the entry.

==============================  ===========================================
Expression                      SQL
==============================  ===========================================
``{"status": "active"}``        ``status = 'active'``
``{"!status": "deleted"}``      ``status != 'deleted'``
``{"status": ["a", "b"]}``      ``status IN ('a', 'b')``
``{"!status": ["a", "b"]}``     ``status NOT IN ('a', 'b')``
``{"deleted_at": None}``        ``deleted_at IS NULL``
``[{"a": 1}, {"b": 2, "c": 3}]`` ``a = 1 OR (b = 2 AND c = 3)``
``{"status": []}``              :class:`EmptyArrayFilterError`
``{"status": UNDEFINED}``       :class:`UndefinedValueFilterError`
==============================  ===========================================

Field names resolve against the columns handed in by the model. A name the
model does not know is referenced as a bare column, and a dotted name
(``orders.user_key``) is emitted verbatim so joined tables can be filtered.

Tags:
    sqlcrud, filter, where-clause, sqlalchemy, compiler
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, TypeVar

from sqlalchemy import and_, column, literal_column, or_, true
from sqlalchemy.sql.elements import ColumnElement

from sqlcrud.errors import (
    EmptyArrayFilterError,
    InvalidFilterExpressionError,
    UndefinedValueFilterError,
)

S = TypeVar("S")

NEGATION_PREFIX = "!"


class _Undefined:
    """Marker for a filter value that was never set."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED: Any = _Undefined()

ConjunctionItem = Mapping[str, Any]
FilterExpression = ConjunctionItem | Sequence[ConjunctionItem]

_ARRAY_TYPES = (list, tuple, set, frozenset)


def is_negated(field_name: str) -> bool:
    return field_name.startswith(NEGATION_PREFIX)


def strip_negation(field_name: str) -> str:
    """``"!status"`` -> ``"status"``; other names are returned unchanged."""
    return field_name[len(NEGATION_PREFIX):] if is_negated(field_name) else field_name


def _resolve_column(name: str, columns: Mapping[str, Any] | None) -> ColumnElement:
    if columns is not None and name in columns:
        return columns[name]
    if "." in name:
        return literal_column(name)
    return column(name)


def _compile_entry(
    field_name: Any,
    value: Any,
    columns: Mapping[str, Any] | None,
) -> ColumnElement:
    if not isinstance(field_name, str):
        raise InvalidFilterExpressionError(
            f"Filter field names must be strings, got {type(field_name).__name__}",
        )

    negated = is_negated(field_name)
    name = strip_negation(field_name)
    if not name:
        raise InvalidFilterExpressionError("An empty field name has been passed in the filter statement.")

    if value is UNDEFINED:
        raise UndefinedValueFilterError(name)

    target = _resolve_column(name, columns)

    if isinstance(value, _ARRAY_TYPES):
        items = list(value)
        if not items:
            raise EmptyArrayFilterError(name)
        if any(item is UNDEFINED for item in items):
            raise UndefinedValueFilterError(name)
        return target.not_in(items) if negated else target.in_(items)

    if value is None:
        return target.is_not(None) if negated else target.is_(None)

    return target != value if negated else target == value


def _compile_conjunction(
    item: Any,
    columns: Mapping[str, Any] | None,
) -> list[ColumnElement]:
    if not isinstance(item, Mapping):
        raise InvalidFilterExpressionError(
            f"A filter conjunction must be a mapping, got {type(item).__name__}",
        )
    return [_compile_entry(field_name, value, columns) for field_name, value in item.items()]


def compile_filter_expression(
    filter_expression: FilterExpression | None,
    columns: Mapping[str, Any] | None = None,
) -> ColumnElement | None:
    """Compile ``filter_expression`` into a SQLAlchemy predicate.

    Args:
        filter_expression: Mapping (AND) or sequence of mappings (OR of ANDs)
        columns: Column lookup, usually ``table.c``; names not found fall
            back to ad-hoc column references

    Returns:
        The predicate, or ``None`` when the expression constrains nothing
        (``None``, ``{}`` or ``[]``)

    Raises:
        EmptyArrayFilterError: An entry holds an empty array
        UndefinedValueFilterError: An entry holds :data:`UNDEFINED`
        InvalidFilterExpressionError: The expression has the wrong shape
    """
    if filter_expression is None:
        return None

    if isinstance(filter_expression, Mapping):
        predicates = _compile_conjunction(filter_expression, columns)
        if not predicates:
            return None
        return predicates[0] if len(predicates) == 1 else and_(*predicates)

    if isinstance(filter_expression, (str, bytes)) or not isinstance(filter_expression, Sequence):
        raise InvalidFilterExpressionError(
            f"A filter expression must be a mapping or a list of mappings, got {type(filter_expression).__name__}",
        )

    if not filter_expression:
        return None

    groups = []
    for item in filter_expression:
        predicates = _compile_conjunction(item, columns)
        # an empty conjunction matches every row
        if not predicates:
            groups.append(true())
        elif len(predicates) == 1:
            groups.append(predicates[0])
        else:
            groups.append(and_(*predicates))

    return groups[0] if len(groups) == 1 else or_(*groups)


def apply_filter_expression(
    statement: S,
    filter_expression: FilterExpression | None,
    columns: Mapping[str, Any] | None = None,
) -> S:
    """Add the compiled ``filter_expression`` to ``statement``'s WHERE clause."""
    predicate = compile_filter_expression(filter_expression, columns)
    if predicate is None:
        return statement
    return statement.where(predicate)  # type: ignore[attr-defined]


def filter_field_names(filter_expression: FilterExpression | None) -> list[str]:
    """Field names referenced by ``filter_expression``, without ``!`` prefixes."""
    if filter_expression is None:
        return []
    items = [filter_expression] if isinstance(filter_expression, Mapping) else list(filter_expression)
    names: list[str] = []
    for item in items:
        if isinstance(item, Mapping):
            for field_name in item:
                name = strip_negation(field_name) if isinstance(field_name, str) else field_name
                if name not in names:
                    names.append(name)
    return names


__all__ = [
    "UNDEFINED",
    "NEGATION_PREFIX",
    "ConjunctionItem",
    "FilterExpression",
    "is_negated",
    "strip_negation",
    "compile_filter_expression",
    "apply_filter_expression",
    "filter_field_names",
]
