"""CRUD model with validation hooks and lifecycle events.

:class:`BaseModel` adds ``create``, ``find``, ``modify``, ``destroy``
(plus their ``*_one`` variants), ``count`` and ``exists`` to the statement
builders of :class:`~sqlcrud.models.model.Model`.

Every create/find/modify/destroy call follows the same sequence::

    1. emit beforeValidation          (inputs, options)
    2. validation hook                (unless disabled in the options)
    3. build the statement
    4. emit afterValidation           (+ query)
    5. execute listeners registered?  → steps 6-8 in Connection.transaction()
    6. emit beforeExecute             (+ transaction)
    7. execute
    8. emit afterExecute              (+ entities)
    9. emit beforeReturn              (copies of the entities)
   10. return the entities

The singular variants run the plural operation inside one transaction and
require exactly one entity, raising :class:`EntityNotFoundError` or
:class:`MultipleEntitiesFoundError` (and rolling back) otherwise. They
reject ``returning_fields=[]`` with :class:`InvalidOptionsError` before
anything is written.

Usage::

    users = BaseModel(connection, "user", ["key", "name", "email"],
                      validator=SchemaValidator(User))

    created = await users.create_one({"key": 1, "name": "Ada", "email": "ada@x.io"})
    active = await users.find({"!email": None}, FindOptions(page=Page(size=20)))
    await users.modify_one({"key": 1}, {"name": "Ada L."})
    assert await users.exists({"key": 1})

Tags:
    sqlcrud, model, crud, lifecycle, transaction
"""

from __future__ import annotations

import copy
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.sql.expression import Executable

from sqlcrud.connection import Connection
from sqlcrud.errors import EntityNotFoundError, InvalidOptionsError, MultipleEntitiesFoundError
from sqlcrud.events import CrudOperation, LifecycleEvent, LifecyclePhase
from sqlcrud.events.emitter import ModelEvents
from sqlcrud.executor import execute, execute_count, execute_exists
from sqlcrud.filters import FilterExpression
from sqlcrud.logging import get_logger
from sqlcrud.models.model import Model
from sqlcrud.options import (
    CountOptions,
    CreateOptions,
    DestroyOptions,
    ExistsOptions,
    FindOptions,
    ModifyOptions,
    Options,
    SelectOptions,
    describe,
    with_transaction,
)
from sqlcrud.validation import NullValidator, Validator

logger = get_logger(__name__)

Entity = dict[str, Any]


class BaseModel(Model):
    """Model with CRUD operations.

    Parameters:
        connection: Connection the model's statements run on.
        table_name: Name of the underlying table.
        field_names: The table's column names.
        validator: Checks inputs before statements are built; defaults to
            :class:`~sqlcrud.validation.NullValidator`.

    Attributes:
        events: One :class:`~sqlcrud.events.emitter.LifecycleEmitter` per
            operation (``events.create``, ``events.find``, ...).
    """

    def __init__(
        self,
        connection: Connection,
        table_name: str,
        field_names: Iterable[str],
        *,
        validator: Validator | None = None,
    ) -> None:
        super().__init__(connection, table_name, field_names)
        self.validator: Validator = validator or NullValidator()
        self.events = ModelEvents()

    # -- Validation hooks --------------------------------------------------
    #
    # Subclasses may override these to validate against external state; the
    # defaults delegate to the validator.

    async def _validate_create_values(self, values: Sequence[Mapping[str, Any]]) -> None:
        self.validator.validate_create_values(values)

    async def _validate_modify_values(self, values: Mapping[str, Any]) -> None:
        self.validator.validate_modify_values(values)

    async def _validate_filter_expression(self, filter_expression: FilterExpression | None) -> None:
        self.validator.validate_filter_expression(filter_expression)

    # -- Operation template ------------------------------------------------

    async def _perform(
        self,
        operation: CrudOperation,
        options: Options,
        validate: Callable[[], Awaitable[None]],
        build: Callable[[], Executable],
        **inputs: Any,
    ) -> list[Entity]:
        emitter = self.events.for_operation(operation)

        def event(phase: LifecyclePhase, **fields: Any) -> LifecycleEvent:
            return LifecycleEvent(
                phase=phase,
                operation=operation,
                table_name=self.table_name,
                options=options,
                **inputs,
                **fields,
            )

        await emitter.emit(event(LifecyclePhase.BEFORE_VALIDATION))
        await validate()
        query = build()
        await emitter.emit(event(LifecyclePhase.AFTER_VALIDATION, query=query))

        async def run(transaction: AsyncConnection) -> list[Entity]:
            await emitter.emit(event(LifecyclePhase.BEFORE_EXECUTE, query=query, transaction=transaction))
            entities = await execute(self.connection, query, transaction)
            await emitter.emit(
                event(LifecyclePhase.AFTER_EXECUTE, query=query, transaction=transaction, entities=entities),
            )
            return entities

        if emitter.has_execute_listener:
            entities = await self.connection.transaction(run, options.transaction)
        else:
            entities = await execute(self.connection, query, options.transaction)

        await emitter.emit(event(LifecyclePhase.BEFORE_RETURN, query=query, entities=copy.deepcopy(entities)))

        logger.debug(
            "operation_completed",
            table_name=self.table_name,
            operation=operation.value,
            row_count=len(entities),
            **describe(options),
        )
        return entities

    def _retrieve_one(self, entities: list[Entity]) -> Entity:
        if not entities:
            raise EntityNotFoundError(self.table_name)
        if len(entities) > 1:
            raise MultipleEntitiesFoundError(self.table_name)
        return entities[0]

    @staticmethod
    def _require_returning(options: CreateOptions | ModifyOptions | DestroyOptions) -> None:
        # Singular variants count the returned rows
        if options.returning_fields is not None and not options.returning_fields:
            raise InvalidOptionsError(
                "returning_fields",
                options.returning_fields,
                "Singular operations need at least one returned field",
            )

    # -- Create ------------------------------------------------------------

    async def create(
        self,
        values: Sequence[Mapping[str, Any]],
        options: CreateOptions = CreateOptions(),
    ) -> list[Entity]:
        """Insert one row per mapping in ``values`` and return the created entities.

        Raises:
            ValidationError: The values were rejected by the validator.
            EmptyValuesError: ``values`` or one of its rows is empty.
            UniqueConstraintViolationError: A unique constraint was violated.
        """
        rows = [dict(item) for item in values]

        async def validate() -> None:
            if not options.is_validation_disabled:
                await self._validate_create_values(rows)

        return await self._perform(
            CrudOperation.CREATE,
            options,
            validate,
            lambda: self.insert_query_builder(rows, options),
            values=rows,
        )

    async def create_one(
        self,
        values: Mapping[str, Any],
        options: CreateOptions = CreateOptions(),
    ) -> Entity:
        self._require_returning(options)

        async def one(transaction: AsyncConnection) -> Entity:
            entities = await self.create([values], with_transaction(options, transaction))
            return self._retrieve_one(entities)

        return await self.connection.transaction(one, options.transaction)

    # -- Find --------------------------------------------------------------

    async def find(
        self,
        filter_expression: FilterExpression | None = None,
        options: FindOptions = FindOptions(),
    ) -> list[Entity]:
        """Return the entities matching ``filter_expression``."""

        async def validate() -> None:
            if not options.is_validation_disabled:
                await self._validate_filter_expression(filter_expression)

        return await self._perform(
            CrudOperation.FIND,
            options,
            validate,
            lambda: self.select_query_builder(filter_expression, options),
            filter_expression=filter_expression,
        )

    async def find_one(
        self,
        filter_expression: FilterExpression | None = None,
        options: FindOptions = FindOptions(),
    ) -> Entity:
        async def one(transaction: AsyncConnection) -> Entity:
            entities = await self.find(filter_expression, with_transaction(options, transaction))
            return self._retrieve_one(entities)

        return await self.connection.transaction(one, options.transaction)

    # -- Count / exists ----------------------------------------------------

    async def count(
        self,
        filter_expression: FilterExpression | None = None,
        options: CountOptions = CountOptions(),
    ) -> int:
        """Number of entities matching ``filter_expression``. Emits no events."""
        if not options.is_validation_disabled:
            await self._validate_filter_expression(filter_expression)

        statement = self.select_query_builder(
            filter_expression,
            SelectOptions(table_name_alias=options.table_name_alias),
        )
        count = await execute_count(self.connection, statement, options.transaction)
        if count is None:
            raise EntityNotFoundError(self.table_name)
        return count

    async def exists(
        self,
        filter_expression: FilterExpression | None = None,
        options: ExistsOptions = ExistsOptions(),
    ) -> bool:
        """Whether any entity matches ``filter_expression``. Emits no events."""
        if not options.is_validation_disabled:
            await self._validate_filter_expression(filter_expression)

        statement = self.select_query_builder(
            filter_expression,
            SelectOptions(table_name_alias=options.table_name_alias),
        )
        return await execute_exists(self.connection, statement, options.transaction)

    # -- Modify ------------------------------------------------------------

    async def modify(
        self,
        filter_expression: FilterExpression | None,
        values: Mapping[str, Any],
        options: ModifyOptions = ModifyOptions(),
    ) -> list[Entity]:
        """Update the entities matching ``filter_expression`` with ``values``.

        Raises:
            ValidationError: The filter or the values were rejected.
            EmptyValuesError: ``values`` is empty.
            UniqueConstraintViolationError: A unique constraint was violated.
        """
        changes = dict(values)

        async def validate() -> None:
            if not options.is_filter_validation_disabled:
                await self._validate_filter_expression(filter_expression)
            if not options.is_values_validation_disabled:
                await self._validate_modify_values(changes)

        return await self._perform(
            CrudOperation.MODIFY,
            options,
            validate,
            lambda: self.update_query_builder(filter_expression, changes, options),
            filter_expression=filter_expression,
            values=changes,
        )

    async def modify_one(
        self,
        filter_expression: FilterExpression | None,
        values: Mapping[str, Any],
        options: ModifyOptions = ModifyOptions(),
    ) -> Entity:
        self._require_returning(options)

        async def one(transaction: AsyncConnection) -> Entity:
            entities = await self.modify(filter_expression, values, with_transaction(options, transaction))
            return self._retrieve_one(entities)

        return await self.connection.transaction(one, options.transaction)

    # -- Destroy -----------------------------------------------------------

    async def destroy(
        self,
        filter_expression: FilterExpression | None,
        options: DestroyOptions = DestroyOptions(),
    ) -> list[Entity]:
        """Delete the entities matching ``filter_expression`` and return them."""

        async def validate() -> None:
            if not options.is_validation_disabled:
                await self._validate_filter_expression(filter_expression)

        return await self._perform(
            CrudOperation.DESTROY,
            options,
            validate,
            lambda: self.delete_query_builder(filter_expression, options),
            filter_expression=filter_expression,
        )

    async def destroy_one(
        self,
        filter_expression: FilterExpression | None,
        options: DestroyOptions = DestroyOptions(),
    ) -> Entity:
        self._require_returning(options)

        async def one(transaction: AsyncConnection) -> Entity:
            entities = await self.destroy(filter_expression, with_transaction(options, transaction))
            return self._retrieve_one(entities)

        return await self.connection.transaction(one, options.transaction)


__all__ = ["BaseModel", "Entity"]
