"""Lifecycle events for CRUD operations.

Why This Package Exists
-----------------------
Applications need to hook into model operations -- audit a modification,
stamp a ``created_by`` column, write an outbox row in the same transaction
as an insert -- without subclassing every model. Each mutating or reading
operation fires a fixed sequence of events, and listeners registered on the
model's per-operation emitter receive them in registration order.

Phases::

    beforeValidation ─► afterValidation ─► beforeExecute ─► afterExecute ─► beforeReturn
    (inputs, options)   (+ query)          (+ transaction)  (+ entities)    (entity copies)

Registering a ``beforeExecute`` or ``afterExecute`` listener makes the
operation run inside a transaction, which the listener receives and may use
for its own statements. An exception raised by a listener propagates to the
caller and rolls that transaction back.

Usage::

    from sqlcrud.events import LifecycleEvent, LifecyclePhase

    async def audit(event: LifecycleEvent) -> None:
        await audit_log.create_one(
            {"table_name": event.table_name, "row_count": len(event.entities)},
            CreateOptions(transaction=event.transaction),
        )

    users.events.modify.on(LifecyclePhase.AFTER_EXECUTE, audit)

Modules
-------
emitter     LifecycleEmitter -- ordered per-phase listeners; ModelEvents
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection

    from sqlcrud.options import Options

__all__ = [
    "LifecyclePhase",
    "CrudOperation",
    "LifecycleEvent",
    "Listener",
    "EXECUTE_PHASES",
]


class LifecyclePhase(str, Enum):
    """Points in an operation at which listeners are called."""

    BEFORE_VALIDATION = "beforeValidation"
    AFTER_VALIDATION = "afterValidation"
    BEFORE_EXECUTE = "beforeExecute"
    AFTER_EXECUTE = "afterExecute"
    BEFORE_RETURN = "beforeReturn"


class CrudOperation(str, Enum):
    CREATE = "create"
    FIND = "find"
    MODIFY = "modify"
    DESTROY = "destroy"


EXECUTE_PHASES = frozenset({LifecyclePhase.BEFORE_EXECUTE, LifecyclePhase.AFTER_EXECUTE})


# ── Event Model ──────────────────────────────────────────────────────────


@dataclass
class LifecycleEvent:
    """Payload handed to lifecycle listeners.

    Fields are filled progressively: ``query`` from ``afterValidation`` on,
    ``transaction`` in the execute phases, ``entities`` from
    ``afterExecute`` on.

    Attributes:
        phase: Phase being emitted
        operation: ``create``, ``find``, ``modify`` or ``destroy``
        table_name: Table of the emitting model
        options: Options the operation was called with
        filter_expression: Filter of find/modify/destroy
        values: Values of create (a list) or modify (a mapping)
        query: The SQLAlchemy statement about to run
        transaction: Transaction the statement runs in
        entities: Rows returned; copies in ``beforeReturn``
        event_id: Unique event identifier
        timestamp: When the event was emitted (UTC)
    """

    phase: LifecyclePhase
    operation: CrudOperation
    table_name: str
    options: Options
    filter_expression: Any = None
    values: Any = None
    query: Any = None
    transaction: AsyncConnection | None = None
    entities: list[dict[str, Any]] | None = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Listener = Callable[[LifecycleEvent], Union[None, Awaitable[None]]]
