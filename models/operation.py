"""Queued state-changing operations and their persisted record form."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping

from datetime_utils import coerce_timestamp, to_rfc3339_utc, utc_now


class OperationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class EntityType(str, Enum):
    TASK = "task"
    PROJECT = "project"
    NOTE = "note"
    RESOURCE = "resource"
    REMINDER = "reminder"


class OperationState(str, Enum):
    PENDING = "pending"
    DISPATCHING = "dispatching"
    APPLIED = "applied"
    DEAD_LETTERED = "dead_lettered"


@dataclass(frozen=True)
class QueuedOperation:
    id: str
    kind: OperationKind
    entity_type: EntityType
    payload: Any
    enqueued_at: datetime = field(default_factory=utc_now)
    attempt_count: int = 0

    def with_failed_attempt(self) -> "QueuedOperation":
        return replace(self, attempt_count=self.attempt_count + 1)

    def describe(self) -> str:
        return f"{self.kind.value} {self.entity_type.value} ({self.id})"

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "entityType": self.entity_type.value,
            "payload": self.payload.to_data(),
            "enqueuedAt": to_rfc3339_utc(self.enqueued_at),
            "attemptCount": self.attempt_count,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "QueuedOperation":
        """Rebuild an operation from its stored record.

        Raises ``ValueError`` for anything that does not describe a valid
        operation.
        """
        from models.payloads import parse_payload

        if not isinstance(record, Mapping):
            raise ValueError("Queue record must be an object")
        op_id = record.get("id")
        if not isinstance(op_id, str) or not op_id:
            raise ValueError("Queue record has no id")
        kind = OperationKind(record.get("kind"))
        entity_type = EntityType(record.get("entityType"))
        enqueued_at = coerce_timestamp(record.get("enqueuedAt"))
        if enqueued_at is None:
            raise ValueError(f"Queue record {op_id} has no valid enqueuedAt")
        attempts = record.get("attemptCount", 0)
        if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts < 0:
            raise ValueError(f"Queue record {op_id} has an invalid attemptCount")
        payload = parse_payload(entity_type, kind, record.get("payload") or {})
        return cls(
            id=op_id,
            kind=kind,
            entity_type=entity_type,
            payload=payload,
            enqueued_at=enqueued_at,
            attempt_count=attempts,
        )


__all__ = ["EntityType", "OperationKind", "OperationState", "QueuedOperation"]
