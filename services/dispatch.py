from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from core.errors import UnsupportedOperation
from models.operation import EntityType, OperationKind, QueuedOperation


# A handler receives the validated payload and returns the canonical row, if any.
Handler = Callable[[Any], Awaitable[Optional[Dict[str, Any]]]]


class BackendDispatcher:
    """Maps every ``(entity type, kind)`` pair to the remote call performing it."""

    def __init__(self) -> None:
        self._handlers: Dict[Tuple[EntityType, OperationKind], Handler] = {}

    def register(self, entity_type: EntityType, kind: OperationKind, handler: Handler) -> None:
        self._handlers[(EntityType(entity_type), OperationKind(kind))] = handler

    def handles(self, entity_type: EntityType, kind: OperationKind) -> bool:
        return (EntityType(entity_type), OperationKind(kind)) in self._handlers

    async def dispatch(self, operation: QueuedOperation) -> Optional[Dict[str, Any]]:
        handler = self._handlers.get((operation.entity_type, operation.kind))
        if handler is None:
            raise UnsupportedOperation(operation.entity_type.value, operation.kind.value)
        return await handler(operation.payload)


__all__ = ["BackendDispatcher", "Handler"]
