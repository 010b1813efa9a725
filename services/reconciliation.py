"""Apply settled operations to the live application state."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, Union

from sqlmodel import SQLModel

from core.errors import AppError, dead_letter_notice, parse_error
from core.log import get_logger
from models.entities import Note, Project, Reminder, Resource, Task
from models.operation import EntityType, OperationKind, QueuedOperation


logger = get_logger("reconcile")


ENTITY_CLASSES: Dict[EntityType, Type[SQLModel]] = {
    EntityType.PROJECT: Project,
    EntityType.TASK: Task,
    EntityType.NOTE: Note,
    EntityType.RESOURCE: Resource,
    EntityType.REMINDER: Reminder,
}


class LiveState:
    """In-memory records per entity type, newest first."""

    def __init__(self) -> None:
        self._records: Dict[EntityType, List[SQLModel]] = {et: [] for et in EntityType}

    def all(self, entity_type: EntityType) -> List[SQLModel]:
        return list(self._records[EntityType(entity_type)])

    def get(self, entity_type: EntityType, record_id: str) -> Optional[SQLModel]:
        for record in self._records[EntityType(entity_type)]:
            if record.id == record_id:
                return record
        return None

    def load(self, entity_type: EntityType, records: List[SQLModel]) -> None:
        self._records[EntityType(entity_type)] = list(records)

    def insert(self, entity_type: EntityType, record: SQLModel) -> None:
        records = [r for r in self._records[EntityType(entity_type)] if r.id != record.id]
        self._records[EntityType(entity_type)] = [record, *records]

    def replace(self, entity_type: EntityType, record: SQLModel) -> bool:
        records = self._records[EntityType(entity_type)]
        for index, existing in enumerate(records):
            if existing.id == record.id:
                records[index] = record
                return True
        return False

    def remove(self, entity_type: EntityType, record_id: str) -> bool:
        records = self._records[EntityType(entity_type)]
        remaining = [r for r in records if r.id != record_id]
        self._records[EntityType(entity_type)] = remaining
        return len(remaining) != len(records)


class Outcome(str, Enum):
    APPLIED = "applied"
    DEAD_LETTERED = "dead_lettered"


@dataclass(frozen=True)
class SettlementEvent:
    operation: QueuedOperation
    outcome: Outcome
    record: Optional[SQLModel] = None
    error: Optional[BaseException] = None


SettlementListener = Callable[[SettlementEvent], None]


class ReconciliationBridge:
    """Routes settled operations into ``LiveState`` and fans out events.

    A crash between a successful backend call and the queue removal replays
    the operation; creates carry no idempotency key, so the replayed create
    is inserted as a second record.
    """

    def __init__(self, state: Optional[LiveState] = None) -> None:
        self.state = state or LiveState()
        self.last_error: Optional[AppError] = None
        self._listeners: List[SettlementListener] = []
        self._apply = {
            OperationKind.CREATE: self._apply_create,
            OperationKind.UPDATE: self._apply_update,
            OperationKind.DELETE: self._apply_delete,
        }

    # ------------------------------------------------------------------
    # Settlement channel
    def subscribe(self, listener: SettlementListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: SettlementListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: SettlementEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Settlement listener %r failed", listener)

    # ------------------------------------------------------------------
    # Last-error channel
    def report_error(self, error: Union[AppError, BaseException]) -> AppError:
        app_error = error if isinstance(error, AppError) else parse_error(error)
        self.last_error = app_error
        return app_error

    def clear_error(self) -> None:
        self.last_error = None

    # ------------------------------------------------------------------
    def reconcile(
        self, operation: QueuedOperation, result: Optional[Mapping[str, Any]] = None
    ) -> Optional[SQLModel]:
        """Apply a backend-confirmed ``operation`` to the live state."""

        return self._apply[operation.kind](operation, result)

    def applied(
        self, operation: QueuedOperation, result: Optional[Mapping[str, Any]] = None
    ) -> Optional[SQLModel]:
        record = None
        error = None
        try:
            record = self.reconcile(operation, result)
        except ValueError as exc:
            # The backend already applied it; only the local view is stale.
            logger.error("Could not reconcile %s: %s", operation.describe(), exc)
            self.report_error(exc)
            error = exc
        self._emit(
            SettlementEvent(operation=operation, outcome=Outcome.APPLIED, record=record, error=error)
        )
        return record

    def dead_lettered(self, operation: QueuedOperation, error: Optional[BaseException]) -> AppError:
        notice = self.report_error(
            dead_letter_notice(operation.entity_type.value, operation.kind.value, error)
        )
        logger.error("Dropped %s after %d attempts: %s", operation.describe(), operation.attempt_count, error)
        self._emit(SettlementEvent(operation=operation, outcome=Outcome.DEAD_LETTERED, error=error))
        return notice

    # ------------------------------------------------------------------
    # Routing
    def _apply_create(self, operation, result):
        data = dict(result) if result else operation.payload.to_data()
        data.setdefault("id", operation.id)
        record = ENTITY_CLASSES[operation.entity_type].model_validate(data)
        self.state.insert(operation.entity_type, record)
        return record

    def _apply_update(self, operation, result):
        payload = operation.payload
        existing = self.state.get(operation.entity_type, payload.id)
        if result:
            record = ENTITY_CLASSES[operation.entity_type].model_validate(dict(result))
        elif existing is not None:
            record = existing.model_copy(update=payload.changes())
        else:
            logger.debug("Updated %s %s is not in live state", operation.entity_type.value, payload.id)
            return None
        if not self.state.replace(operation.entity_type, record):
            logger.debug("Updated %s %s is not in live state", operation.entity_type.value, payload.id)
        return record

    def _apply_delete(self, operation, result):
        self.state.remove(operation.entity_type, operation.payload.id)
        return None


__all__ = [
    "ENTITY_CLASSES",
    "LiveState",
    "Outcome",
    "ReconciliationBridge",
    "SettlementEvent",
    "SettlementListener",
]
