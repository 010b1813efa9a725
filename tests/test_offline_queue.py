import json
import logging

import pytest

from core.errors import QueuePersistenceError
from models.operation import EntityType, OperationKind
from models.payloads import TaskCreate, TaskUpdate
from services.offline_queue import OfflineQueue
from storage.kv import JsonFileKeyValueStore, SqliteKeyValueStore


def test_append_survives_restart_in_order(kv_store, session_factory):
    queue = OfflineQueue(kv_store)
    first = queue.append(OperationKind.CREATE, EntityType.TASK, {"name": "A"})
    second = queue.append(OperationKind.UPDATE, EntityType.TASK, {"id": "t-1", "completed": True})
    third = queue.append(OperationKind.DELETE, EntityType.NOTE, {"id": "n-1"})
    del queue

    restarted = OfflineQueue(SqliteKeyValueStore(session_factory))
    loaded = restarted.load()

    assert [op.id for op in loaded] == [first.id, second.id, third.id]
    assert loaded[0].payload == TaskCreate(name="A")
    assert isinstance(loaded[1].payload, TaskUpdate)
    assert loaded[1].payload.changes() == {"completed": True}
    assert all(op.attempt_count == 0 for op in loaded)


def test_append_is_durable_before_returning(kv_store):
    queue = OfflineQueue(kv_store)
    op = queue.append(OperationKind.CREATE, EntityType.PROJECT, {"name": "Garden"})

    # nothing else runs between the return and the "crash"
    stored = json.loads(kv_store.get(queue.key))
    assert stored[0]["id"] == op.id
    assert stored[0]["entityType"] == "project"
    assert stored[0]["kind"] == "create"
    assert stored[0]["attemptCount"] == 0
    assert stored[0]["enqueuedAt"].endswith("Z")


def test_append_after_restart_keeps_earlier_operations(kv_store, session_factory):
    first = OfflineQueue(kv_store).append(OperationKind.CREATE, EntityType.TASK, {"name": "A"})

    restarted = OfflineQueue(SqliteKeyValueStore(session_factory))
    second = restarted.append(OperationKind.CREATE, EntityType.TASK, {"name": "B"})

    assert [op.id for op in OfflineQueue(kv_store).load()] == [first.id, second.id]
    assert restarted.count() == 2


def test_ids_are_unique(kv_store):
    queue = OfflineQueue(kv_store)
    ids = {queue.append(OperationKind.CREATE, EntityType.TASK, {"name": str(i)}).id for i in range(20)}
    assert len(ids) == 20


def test_remove_preserves_order_of_remainder(kv_store):
    queue = OfflineQueue(kv_store)
    ops = [queue.append(OperationKind.CREATE, EntityType.TASK, {"name": n}) for n in "ABC"]

    assert queue.remove(ops[1].id) is True
    assert queue.remove("missing") is False

    assert [op.id for op in OfflineQueue(kv_store).load()] == [ops[0].id, ops[2].id]


def test_record_failure_increments_and_persists(kv_store):
    queue = OfflineQueue(kv_store)
    op = queue.append(OperationKind.CREATE, EntityType.TASK, {"name": "A"})

    updated = queue.record_failure(op.id)

    assert updated.attempt_count == 1
    assert OfflineQueue(kv_store).load()[0].attempt_count == 1
    assert queue.record_failure("missing") is None


def test_clear_persists_empty_list(kv_store):
    queue = OfflineQueue(kv_store)
    queue.append(OperationKind.CREATE, EntityType.TASK, {"name": "A"})
    queue.clear()

    assert kv_store.get(queue.key) == "[]"
    assert OfflineQueue(kv_store).load() == []


@pytest.mark.parametrize("blob", [None, "", "{not json", json.dumps({"id": "x"}), "42"])
def test_unreadable_storage_loads_empty(kv_store, caplog, blob):
    if blob is not None:
        kv_store.set("offline_queue", blob)
    queue = OfflineQueue(kv_store)
    with caplog.at_level(logging.WARNING):
        assert queue.load() == []


def test_malformed_records_are_skipped(kv_store):
    queue = OfflineQueue(kv_store)
    good = queue.append(OperationKind.CREATE, EntityType.TASK, {"name": "A"})
    records = json.loads(kv_store.get(queue.key))
    records.insert(0, {"id": "bad", "kind": "explode", "entityType": "task", "payload": {}})
    records.append({"id": "bad-2", "kind": "create", "entityType": "task", "payload": {}, "enqueuedAt": 0})
    kv_store.set(queue.key, json.dumps(records))

    assert [op.id for op in OfflineQueue(kv_store).load()] == [good.id]


def test_legacy_epoch_millisecond_timestamps_are_accepted(kv_store):
    kv_store.set(
        "offline_queue",
        json.dumps(
            [
                {
                    "id": "legacy",
                    "kind": "delete",
                    "entityType": "task",
                    "payload": {"id": "t-9"},
                    "enqueuedAt": 1737576000000,
                    "attemptCount": 2,
                }
            ]
        ),
    )
    (op,) = OfflineQueue(kv_store).load()
    assert op.attempt_count == 2
    assert op.enqueued_at.year == 2025


def test_invalid_payload_is_rejected(kv_store):
    queue = OfflineQueue(kv_store)
    with pytest.raises(ValueError):
        queue.append(OperationKind.UPDATE, EntityType.TASK, {"name": "no id"})
    assert queue.count() == 0


class BrokenStore:
    def __init__(self):
        self.data = {}
        self.fail = False

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        if self.fail:
            raise OSError("disk full")
        self.data[key] = value


def test_failed_write_leaves_memory_unchanged():
    store = BrokenStore()
    queue = OfflineQueue(store)
    queue.append(OperationKind.CREATE, EntityType.TASK, {"name": "A"})
    store.fail = True

    with pytest.raises(QueuePersistenceError):
        queue.append(OperationKind.CREATE, EntityType.TASK, {"name": "B"})

    assert queue.count() == 1
    assert [op.payload.name for op in queue.snapshot()] == ["A"]


def test_json_file_store_round_trip_and_corruption(tmp_path, caplog):
    path = tmp_path / "storage" / "queue.json"
    queue = OfflineQueue(JsonFileKeyValueStore(path))
    op = queue.append(OperationKind.CREATE, EntityType.REMINDER, {
        "linked_entity_type": "Task",
        "linked_entity_id": "t-1",
        "reminder_date": "2025-02-01T09:00:00Z",
    })

    assert [o.id for o in OfflineQueue(JsonFileKeyValueStore(path)).load()] == [op.id]
    assert not path.with_suffix(".tmp").exists()

    path.write_text("\x00garbage", encoding="utf-8")
    with caplog.at_level(logging.WARNING, logger="assistant.sync.storage"):
        assert OfflineQueue(JsonFileKeyValueStore(path)).load() == []
    assert any("corrupt" in r.getMessage() for r in caplog.records)
