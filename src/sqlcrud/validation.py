"""
Input validation for model operations.

A model validates create values, modify values and filter expressions
before it builds a statement. The checks are delegated to a
:class:`Validator`; the default :class:`NullValidator` accepts everything,
and :class:`SchemaValidator` checks inputs against a pydantic model that
describes one row of the table.

Manifesto:
    - **Fail Before I/O:** Invalid input never reaches the database
    - **Report Everything:** All problems are collected, not just the first
    - **Same Schema, Three Shapes:** Create values must be complete rows,
      modify values are partial rows, filter values are checked per field

Examples:
    >>> class User(pydantic.BaseModel):
    ...     key: int
    ...     name: str
    ...     email: str
    >>> validator = SchemaValidator(User)
    >>> validator.validate_modify_values({"name": 5})
    Traceback (most recent call last):
    ...
    sqlcrud.errors.ValidationError: The submitted values are invalid
    >>> validator.validate_filter_expression({"!email": ["a@x.io", "b@x.io"]})

Tags:
    sqlcrud, validation, pydantic, schema
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

import pydantic

from sqlcrud.errors import ValidationError
from sqlcrud.filters import UNDEFINED, FilterExpression, strip_negation

__all__ = [
    "Validator",
    "NullValidator",
    "SchemaValidator",
]


@runtime_checkable
class Validator(Protocol):
    """Checks the inputs of model operations; raises :class:`ValidationError`."""

    def validate_create_values(self, values: Sequence[Mapping[str, Any]]) -> None: ...

    def validate_modify_values(self, values: Mapping[str, Any]) -> None: ...

    def validate_filter_expression(self, filter_expression: FilterExpression | None) -> None: ...


class NullValidator:
    """Accepts every input."""

    def validate_create_values(self, values: Sequence[Mapping[str, Any]]) -> None:
        return None

    def validate_modify_values(self, values: Mapping[str, Any]) -> None:
        return None

    def validate_filter_expression(self, filter_expression: FilterExpression | None) -> None:
        return None


def _detail(field: str, message: str, type_: str, **extra: Any) -> dict[str, Any]:
    return {"field": field, "message": message, "type": type_, **extra}


class SchemaValidator:
    """Validate model inputs against a pydantic model of one row.

    Args:
        schema: pydantic model whose fields are the table's columns
        strict: Use pydantic strict mode (no ``"1"`` -> ``1`` coercion)

    Create values are validated as complete rows: required fields must be
    present. Modify values and filter values are validated field by field,
    so absent fields are fine. Fields the schema does not declare are
    rejected in all three cases.
    """

    def __init__(self, schema: type[pydantic.BaseModel], *, strict: bool = True) -> None:
        self.schema = schema
        self.strict = strict

    @property
    def field_names(self) -> list[str]:
        return list(self.schema.model_fields)

    def _errors(
        self,
        values: Mapping[str, Any],
        *,
        partial: bool,
        **extra: Any,
    ) -> list[dict[str, Any]]:
        details = [
            _detail(str(name), f'"{name}" is not allowed', "extra_forbidden", **extra)
            for name in values
            if name not in self.schema.model_fields
        ]
        known = {name: value for name, value in values.items() if name in self.schema.model_fields}

        try:
            self.schema.model_validate(known, strict=self.strict)
        except pydantic.ValidationError as exc:
            for error in exc.errors(include_url=False):
                location = error["loc"]
                if partial and (not location or location[0] not in known):
                    continue
                details.append(
                    _detail(".".join(str(part) for part in location), error["msg"], error["type"], **extra),
                )
        return details

    def _raise(self, details: list[dict[str, Any]]) -> None:
        if details:
            raise ValidationError(
                "The submitted values are invalid",
                field=details[0]["field"],
                details=details,
            )

    def validate_create_values(self, values: Sequence[Mapping[str, Any]]) -> None:
        details: list[dict[str, Any]] = []
        for index, item in enumerate(values):
            details.extend(self._errors(item, partial=False, index=index))
        self._raise(details)

    def validate_modify_values(self, values: Mapping[str, Any]) -> None:
        self._raise(self._errors(values, partial=True))

    def validate_filter_expression(self, filter_expression: FilterExpression | None) -> None:
        if filter_expression is None:
            return
        items: Iterable[Any] = (
            [filter_expression] if isinstance(filter_expression, Mapping) else filter_expression
        )

        details: list[dict[str, Any]] = []
        for item in items:
            if not isinstance(item, Mapping):
                continue
            for field_name, value in item.items():
                name = strip_negation(field_name) if isinstance(field_name, str) else field_name
                if name not in self.schema.model_fields:
                    details.append(_detail(str(name), f'"{name}" is not allowed', "extra_forbidden"))
                    continue
                candidates = list(value) if isinstance(value, (list, tuple, set, frozenset)) else [value]
                for candidate in candidates:
                    # NULL comparisons and undefined values are handled by the compiler
                    if candidate is None or candidate is UNDEFINED:
                        continue
                    details.extend(self._errors({name: candidate}, partial=True))
        self._raise(details)
