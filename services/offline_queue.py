from __future__ import annotations

import json
import uuid
from typing import Any, List, Mapping, Optional, Tuple, Union

from core.errors import QueuePersistenceError
from core.log import get_logger
from core.settings import QUEUE
from datetime_utils import utc_now
from models.operation import EntityType, OperationKind, QueuedOperation
from models.payloads import MutationPayload, parse_payload
from storage.kv import KeyValueStore


logger = get_logger("queue")


class OfflineQueue:
    """Ordered, crash-recoverable list of pending operations under one key.

    Every mutating call writes the complete list to ``store`` before the
    in-memory copy is replaced, so the copy is never ahead of storage. The
    stored list is read on first use, so a fresh instance appends after the
    operations a previous run left behind.
    """

    def __init__(self, store: KeyValueStore, key: str = QUEUE.storage_key) -> None:
        self.store = store
        self.key = key
        self._queue: List[QueuedOperation] = []
        self._loaded = False

    # ------------------------------------------------------------------
    # Public API
    def load(self) -> List[QueuedOperation]:
        """Read the stored queue. Unreadable data yields an empty queue."""

        try:
            blob = self.store.get(self.key)
        except Exception as exc:
            logger.error("Offline queue storage unreadable, starting empty: %s", exc)
            self._queue = []
            self._loaded = True
            return []
        self._queue = self._decode(blob)
        self._loaded = True
        return list(self._queue)

    def append(
        self,
        kind: OperationKind,
        entity_type: EntityType,
        payload: Union[MutationPayload, Mapping[str, Any]],
    ) -> QueuedOperation:
        kind = OperationKind(kind)
        entity_type = EntityType(entity_type)
        self._ensure_loaded()
        operation = QueuedOperation(
            id=self._new_id(),
            kind=kind,
            entity_type=entity_type,
            payload=parse_payload(entity_type, kind, payload),
            enqueued_at=utc_now(),
            attempt_count=0,
        )
        self._write([*self._queue, operation])
        logger.info("Queued %s", operation.describe())
        return operation

    def remove(self, op_id: str) -> bool:
        self._ensure_loaded()
        remaining = [op for op in self._queue if op.id != op_id]
        if len(remaining) == len(self._queue):
            return False
        self._write(remaining)
        logger.debug("Removed %s from offline queue", op_id)
        return True

    def record_failure(self, op_id: str) -> Optional[QueuedOperation]:
        """Increment the attempt count of ``op_id`` and persist it in place."""

        self._ensure_loaded()
        updated: Optional[QueuedOperation] = None
        entries: List[QueuedOperation] = []
        for op in self._queue:
            if op.id == op_id:
                updated = op.with_failed_attempt()
                entries.append(updated)
            else:
                entries.append(op)
        if updated is None:
            return None
        self._write(entries)
        return updated

    def clear(self) -> None:
        self._write([])
        logger.info("Offline queue cleared")

    def get(self, op_id: str) -> Optional[QueuedOperation]:
        self._ensure_loaded()
        for op in self._queue:
            if op.id == op_id:
                return op
        return None

    def snapshot(self) -> Tuple[QueuedOperation, ...]:
        self._ensure_loaded()
        return tuple(self._queue)

    def count(self) -> int:
        self._ensure_loaded()
        return len(self._queue)

    def __len__(self) -> int:
        return self.count()

    # ------------------------------------------------------------------
    # Helpers
    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _new_id(self) -> str:
        existing = {op.id for op in self._queue}
        while True:
            candidate = uuid.uuid4().hex
            if candidate not in existing:
                return candidate

    def _write(self, entries: List[QueuedOperation]) -> None:
        blob = json.dumps([op.to_record() for op in entries], ensure_ascii=False)
        try:
            self.store.set(self.key, blob)
        except Exception as exc:
            raise QueuePersistenceError(f"Could not persist offline queue: {exc}") from exc
        self._queue = list(entries)
        self._loaded = True

    def _decode(self, blob: Optional[str]) -> List[QueuedOperation]:
        if not blob:
            return []
        try:
            records = json.loads(blob)
        except (json.JSONDecodeError, TypeError) as exc:
            logger.warning("Offline queue blob is not valid JSON, ignoring it: %s", exc)
            return []
        if not isinstance(records, list):
            logger.warning("Offline queue blob is not a list, ignoring it")
            return []

        result: List[QueuedOperation] = []
        seen = set()
        for record in records:
            try:
                op = QueuedOperation.from_record(record)
            except ValueError as exc:
                logger.warning("Skipping malformed queue record: %s", exc)
                continue
            if op.id in seen:
                logger.warning("Skipping duplicate queue record %s", op.id)
                continue
            seen.add(op.id)
            result.append(op)
        return result


__all__ = ["OfflineQueue"]
