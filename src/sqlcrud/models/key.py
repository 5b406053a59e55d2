"""Models of tables identified by a single ``key`` column.

:class:`KeyModel` is generic over the key type, so the same class serves
serial integer keys and string keys::

    users: KeyModel[int] = KeyModel(connection, "user", ["key", "name", "email"])
    codes: KeyModel[str] = KeyModel(connection, "country", ["key", "name"])

    user = await users.find_by_key(1)
    user["name"] = "Ada L."
    await users.modify_entity(user)
    await codes.destroy_by_key("CZ")

``get_next_key_value`` reads the key's sequence (PostgreSQL), which lets a
caller know a key before inserting the row, e.g. to create rows that
reference each other in one transaction.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Generic, TypeVar

from sqlalchemy import func, select

from sqlcrud.connection import Connection
from sqlcrud.errors import MissingKeyFieldError
from sqlcrud.executor import execute_single
from sqlcrud.models.base import BaseModel, Entity
from sqlcrud.options import DestroyOptions, FindOptions, ModifyOptions, Options
from sqlcrud.validation import Validator

K = TypeVar("K", int, str)


class KeyModel(BaseModel, Generic[K]):
    """CRUD model addressed by a ``key`` primary key.

    Parameters:
        connection: Connection the model's statements run on.
        table_name: Name of the underlying table.
        field_names: The table's column names; must include ``key``.
        validator: Input validator, see :class:`BaseModel`.
        key_sequence_name: Sequence behind the key; defaults to
            ``<table_name>_key_seq``, the name PostgreSQL gives a serial
            ``key`` column.
    """

    key_field = "key"

    def __init__(
        self,
        connection: Connection,
        table_name: str,
        field_names: Iterable[str],
        *,
        validator: Validator | None = None,
        key_sequence_name: str | None = None,
    ) -> None:
        super().__init__(connection, table_name, field_names, validator=validator)
        if self.key_field not in self.field_names:
            raise MissingKeyFieldError(table_name, self.key_field)
        self.key_sequence_name = key_sequence_name or f"{table_name}_{self.key_field}_seq"

    def field_names_without_key(self) -> tuple[str, ...]:
        return tuple(name for name in self.field_names if name != self.key_field)

    def _key_filter(self, key: K) -> dict[str, Any]:
        return {self.key_field: key}

    def _entity_key(self, entity: Mapping[str, Any]) -> K:
        if self.key_field not in entity:
            raise MissingKeyFieldError(self.table_name, self.key_field)
        return entity[self.key_field]

    async def get_next_key_value(self, options: Options = Options()) -> int:
        """Advance the key sequence and return its new value."""
        statement = select(func.nextval(self.key_sequence_name).label("value"))
        row = await execute_single(self.connection, statement, options.transaction)
        return int(row["value"])

    async def find_by_key(self, key: K, options: FindOptions = FindOptions()) -> Entity:
        return await self.find_one(self._key_filter(key), options)

    async def modify_by_key(
        self,
        key: K,
        values: Mapping[str, Any],
        options: ModifyOptions = ModifyOptions(),
    ) -> Entity:
        return await self.modify_one(self._key_filter(key), values, options)

    async def destroy_by_key(self, key: K, options: DestroyOptions = DestroyOptions()) -> Entity:
        return await self.destroy_one(self._key_filter(key), options)

    async def modify_entity(
        self,
        entity: Mapping[str, Any],
        options: ModifyOptions = ModifyOptions(),
    ) -> Entity:
        """Write ``entity`` back to its row.

        The key selects the row; every other model field present in
        ``entity`` is written. Keys that are not model fields are ignored.
        """
        key = self._entity_key(entity)
        values = {name: entity[name] for name in self.field_names_without_key() if name in entity}
        return await self.modify_by_key(key, values, options)

    async def destroy_entity(
        self,
        entity: Mapping[str, Any],
        options: DestroyOptions = DestroyOptions(),
    ) -> Entity:
        return await self.destroy_by_key(self._entity_key(entity), options)


__all__ = ["KeyModel"]
