"""Typed option structs for builders and CRUD operations.

Every builder and model method takes one immutable options object. The
classes form a small hierarchy so that an operation's options can be passed
straight through to the builder underneath it::

    Options (transaction)
     ├─ ReturningOptions (returning_fields)
     │   ├─ InsertOptions ── CreateOptions
     │   ├─ UpdateOptions ── ModifyOptions
     │   └─ DeleteOptions ── DestroyOptions
     ├─ SelectOptions (table_name_alias, field_name_aliases, order_by, page)
     │   └─ FindOptions
     ├─ CountOptions
     └─ ExistsOptions

Examples:
    >>> FindOptions(order_by=(OrderBy("name"),), page=Page(size=20, number=2))
    >>> CreateOptions(returning_fields=["key"])      # RETURNING key
    >>> CreateOptions(returning_fields=[])           # no RETURNING clause
    >>> with_transaction(FindOptions(), transaction)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any, TypeVar

from sqlalchemy.ext.asyncio import AsyncConnection

from sqlcrud.errors import InvalidOptionsError

O = TypeVar("O", bound="Options")


@dataclass(frozen=True)
class OrderBy:
    """One ORDER BY term; ``direction`` is ``asc`` or ``desc``."""

    column: str
    direction: str = "asc"

    def __post_init__(self) -> None:
        if not self.column:
            raise InvalidOptionsError("order_by.column", self.column)
        direction = self.direction.lower()
        if direction not in ("asc", "desc"):
            raise InvalidOptionsError("order_by.direction", self.direction)
        object.__setattr__(self, "direction", direction)


@dataclass(frozen=True)
class Page:
    """1-indexed page: ``LIMIT size OFFSET size * (number - 1)``."""

    size: int
    number: int = 1

    def __post_init__(self) -> None:
        if self.size < 1:
            raise InvalidOptionsError("page.size", self.size, "The page size must be at least 1")
        if self.number < 1:
            raise InvalidOptionsError("page.number", self.number, "The page number must be at least 1")

    @property
    def offset(self) -> int:
        return self.size * (self.number - 1)


# ── Builder options ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Options:
    transaction: AsyncConnection | None = None


@dataclass(frozen=True)
class ReturningOptions(Options):
    """``returning_fields``: ``None`` for every model field, ``[]`` for none."""

    returning_fields: Sequence[str] | None = None


@dataclass(frozen=True)
class InsertOptions(ReturningOptions):
    is_empty_values_verification_disabled: bool = False


@dataclass(frozen=True)
class UpdateOptions(ReturningOptions):
    is_empty_values_verification_disabled: bool = False


@dataclass(frozen=True)
class DeleteOptions(ReturningOptions):
    pass


@dataclass(frozen=True)
class SelectOptions(Options):
    """Projection, ordering and paging for SELECT statements.

    ``field_name_aliases`` maps an output alias to its source column
    (``{"user_name": "name"}`` renders ``name AS user_name``); an empty
    alias selects the source column under its own name.
    """

    table_name_alias: str | None = None
    field_name_aliases: Mapping[str, str] | None = None
    order_by: Sequence[OrderBy] = ()
    page: Page | None = None


# ── Operation options ────────────────────────────────────────────────────


@dataclass(frozen=True)
class CreateOptions(InsertOptions):
    is_validation_disabled: bool = False


@dataclass(frozen=True)
class FindOptions(SelectOptions):
    is_validation_disabled: bool = False


@dataclass(frozen=True)
class CountOptions(Options):
    table_name_alias: str | None = None
    is_validation_disabled: bool = False


@dataclass(frozen=True)
class ExistsOptions(Options):
    table_name_alias: str | None = None
    is_validation_disabled: bool = False


@dataclass(frozen=True)
class ModifyOptions(UpdateOptions):
    is_filter_validation_disabled: bool = False
    is_values_validation_disabled: bool = False


@dataclass(frozen=True)
class DestroyOptions(DeleteOptions):
    is_validation_disabled: bool = False


def with_transaction(options: O, transaction: AsyncConnection | None) -> O:
    """Return a copy of ``options`` bound to ``transaction``."""
    return replace(options, transaction=transaction)


def describe(options: Options) -> dict[str, Any]:
    """Loggable view of ``options`` (the transaction reduced to a flag)."""
    result: dict[str, Any] = {}
    for name, value in vars(options).items():
        if name == "transaction":
            result["in_transaction"] = value is not None
        elif value not in (None, (), False):
            result[name] = value
    return result


__all__ = [
    "OrderBy",
    "Page",
    "Options",
    "ReturningOptions",
    "InsertOptions",
    "UpdateOptions",
    "DeleteOptions",
    "SelectOptions",
    "CreateOptions",
    "FindOptions",
    "CountOptions",
    "ExistsOptions",
    "ModifyOptions",
    "DestroyOptions",
    "with_transaction",
    "describe",
]
