"""
Per-operation lifecycle emitter.

Manifesto:
    Hooks around a CRUD operation must run in a predictable order and must
    be able to veto it. Listeners are therefore called one at a time, in
    registration order, and an exception from any of them stops the
    operation.

Listeners may be plain functions or coroutine functions; the result of a
plain function is ignored, an awaitable result is awaited before the next
listener runs.

Tags:
    sqlcrud, events, lifecycle, listeners, asyncio

Doc-Types:
    api-reference
"""

from __future__ import annotations

import inspect
import uuid
from dataclasses import dataclass, field

from sqlcrud.events import (
    EXECUTE_PHASES,
    CrudOperation,
    LifecycleEvent,
    LifecyclePhase,
    Listener,
)
from sqlcrud.logging import get_logger

__all__ = ["LifecycleEmitter", "ModelEvents"]

logger = get_logger(__name__)


@dataclass
class Subscription:
    """Internal subscription record."""

    id: str
    phase: LifecyclePhase
    listener: Listener


class LifecycleEmitter:
    """Ordered listeners for the phases of one operation.

    Example::

        emitter = LifecycleEmitter(CrudOperation.CREATE)

        def stamp(event: LifecycleEvent) -> None:
            for values in event.values:
                values.setdefault("status", "new")

        emitter.on(LifecyclePhase.BEFORE_VALIDATION, stamp)
        emitter.has_execute_listener  # False -- no transaction needed
    """

    def __init__(self, operation: CrudOperation | str) -> None:
        self.operation = CrudOperation(operation)
        self._subscriptions: dict[str, Subscription] = {}
        self._has_execute_listener = False

    @property
    def has_execute_listener(self) -> bool:
        """Whether a ``beforeExecute`` or ``afterExecute`` listener is registered."""
        return self._has_execute_listener

    def on(self, phase: LifecyclePhase | str, listener: Listener) -> str:
        """Register ``listener`` for ``phase``.

        Returns:
            Subscription ID, for :meth:`remove`
        """
        phase = LifecyclePhase(phase)
        sub_id = f"sub_{uuid.uuid4().hex[:12]}"
        self._subscriptions[sub_id] = Subscription(id=sub_id, phase=phase, listener=listener)
        if phase in EXECUTE_PHASES:
            self._has_execute_listener = True
        return sub_id

    def remove(self, subscription_id: str) -> None:
        """Remove a subscription; unknown IDs are ignored."""
        self._subscriptions.pop(subscription_id, None)
        self._has_execute_listener = any(
            sub.phase in EXECUTE_PHASES for sub in self._subscriptions.values()
        )

    def clear(self) -> None:
        self._subscriptions.clear()
        self._has_execute_listener = False

    def listeners(self, phase: LifecyclePhase | str) -> list[Listener]:
        phase = LifecyclePhase(phase)
        return [sub.listener for sub in self._subscriptions.values() if sub.phase is phase]

    def listener_count(self, phase: LifecyclePhase | str | None = None) -> int:
        if phase is None:
            return len(self._subscriptions)
        return len(self.listeners(phase))

    async def emit(self, event: LifecycleEvent) -> bool:
        """Call the listeners of ``event.phase`` in order.

        Returns:
            Whether any listener was called
        """
        listeners = self.listeners(event.phase)
        for listener in listeners:
            result = listener(event)
            if inspect.isawaitable(result):
                await result

        if listeners:
            logger.debug(
                "lifecycle_event_emitted",
                operation=self.operation.value,
                phase=event.phase.value,
                table_name=event.table_name,
                listener_count=len(listeners),
            )
        return bool(listeners)


@dataclass
class ModelEvents:
    """The four emitters owned by a model."""

    create: LifecycleEmitter = field(default_factory=lambda: LifecycleEmitter(CrudOperation.CREATE))
    find: LifecycleEmitter = field(default_factory=lambda: LifecycleEmitter(CrudOperation.FIND))
    modify: LifecycleEmitter = field(default_factory=lambda: LifecycleEmitter(CrudOperation.MODIFY))
    destroy: LifecycleEmitter = field(default_factory=lambda: LifecycleEmitter(CrudOperation.DESTROY))

    def for_operation(self, operation: CrudOperation | str) -> LifecycleEmitter:
        return getattr(self, CrudOperation(operation).value)
