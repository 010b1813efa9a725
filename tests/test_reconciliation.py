from core.errors import BackendError, ErrorType
from models.entities import Task
from models.operation import EntityType, OperationKind, QueuedOperation
from models.payloads import parse_payload
from services.reconciliation import LiveState, Outcome, ReconciliationBridge


def op(kind, entity_type, data, op_id="op-1"):
    return QueuedOperation(
        id=op_id,
        kind=kind,
        entity_type=entity_type,
        payload=parse_payload(entity_type, kind, data),
    )


def test_create_inserts_canonical_record_first():
    bridge = ReconciliationBridge()
    bridge.state.insert(EntityType.TASK, Task(id="old", name="Old"))

    record = bridge.applied(
        op(OperationKind.CREATE, EntityType.TASK, {"name": "X"}),
        {"id": "t-1", "name": "X", "priority": "High"},
    )

    assert record.id == "t-1"
    assert [t.name for t in bridge.state.all(EntityType.TASK)] == ["X", "Old"]
    assert bridge.state.get(EntityType.TASK, "t-1").priority == "High"


def test_create_without_backend_row_uses_payload():
    bridge = ReconciliationBridge()
    record = bridge.applied(op(OperationKind.CREATE, EntityType.NOTE, {"content": "hi", "tags": ["a"]}, "n-op"))

    assert record.id == "n-op"
    assert record.tags == ["a"]


def test_update_merges_changes_into_existing_record():
    state = LiveState()
    state.insert(EntityType.TASK, Task(id="t-1", name="Draft", completed=False))
    bridge = ReconciliationBridge(state)

    bridge.applied(op(OperationKind.UPDATE, EntityType.TASK, {"id": "t-1", "completed": True}))

    task = state.get(EntityType.TASK, "t-1")
    assert task.completed is True
    assert task.name == "Draft"


def test_update_of_unknown_record_is_ignored():
    bridge = ReconciliationBridge()
    assert bridge.applied(op(OperationKind.UPDATE, EntityType.PROJECT, {"id": "p-9", "name": "x"})) is None
    assert bridge.state.all(EntityType.PROJECT) == []


def test_delete_removes_record_and_notifies():
    state = LiveState()
    state.insert(EntityType.TASK, Task(id="t-1", name="Gone"))
    bridge = ReconciliationBridge(state)
    events = []
    bridge.subscribe(events.append)

    bridge.applied(op(OperationKind.DELETE, EntityType.TASK, {"id": "t-1"}))

    assert state.all(EntityType.TASK) == []
    assert [e.outcome for e in events] == [Outcome.APPLIED]


def test_dead_letter_reports_permanent_loss():
    bridge = ReconciliationBridge()
    events = []
    bridge.subscribe(events.append)
    failed = op(OperationKind.CREATE, EntityType.TASK, {"name": "X"})

    notice = bridge.dead_lettered(failed, BackendError(409, "duplicate key", code="23505"))

    assert bridge.last_error is notice
    assert notice.retryable is False
    assert notice.type == ErrorType.DATABASE
    assert "discarded" in notice.message
    assert events[0].outcome == Outcome.DEAD_LETTERED

    bridge.clear_error()
    assert bridge.last_error is None


def test_listener_failure_does_not_stop_others():
    bridge = ReconciliationBridge()
    seen = []

    def broken(event):
        raise RuntimeError("ui bug")

    bridge.subscribe(broken)
    bridge.subscribe(seen.append)
    bridge.applied(op(OperationKind.CREATE, EntityType.PROJECT, {"name": "P"}))

    assert len(seen) == 1


def test_unreconcilable_row_is_reported_but_still_settles():
    bridge = ReconciliationBridge()
    events = []
    bridge.subscribe(events.append)

    record = bridge.applied(op(OperationKind.CREATE, EntityType.TASK, {"name": "X"}), {"id": "t-1"})

    assert record is None
    assert bridge.last_error is not None
    assert events[0].outcome == Outcome.APPLIED
    assert events[0].error is not None
