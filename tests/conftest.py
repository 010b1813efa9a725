from typing import Dict, List, Tuple

import pytest
from sqlmodel import Session, SQLModel, create_engine

import models.kv_entry  # noqa: F401
from models.operation import EntityType, OperationKind
from services.dispatch import BackendDispatcher
from storage.kv import SqliteKeyValueStore


class FakeSleep:
    """Records backoff waits instead of sleeping."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)

    @property
    def total(self) -> float:
        return sum(self.calls)


class FakeBackend:
    """Scriptable backend: every (entity, kind) call is recorded in order."""

    def __init__(self):
        self.calls: List[Tuple[str, str, dict]] = []
        self.failures: Dict[str, int] = {}
        self.always_fail: set = set()
        self._counter = 0

    def fail_times(self, key: str, times: int) -> None:
        self.failures[key] = times

    def dispatcher(self) -> BackendDispatcher:
        dispatcher = BackendDispatcher()
        for entity_type in EntityType:
            for kind in OperationKind:
                dispatcher.register(entity_type, kind, self._handler(entity_type, kind))
        return dispatcher

    def _handler(self, entity_type, kind):
        async def handle(payload):
            data = payload.to_data()
            self.calls.append((entity_type.value, kind.value, data))
            key = data.get("name") or data.get("content") or data.get("id")
            if key in self.always_fail:
                raise ConnectionError(f"backend unreachable for {key}")
            if self.failures.get(key, 0) > 0:
                self.failures[key] -= 1
                raise ConnectionError(f"transient failure for {key}")
            if kind == OperationKind.CREATE:
                self._counter += 1
                return {"id": f"{entity_type.value}-{self._counter}", **data}
            return None

        return handle


@pytest.fixture()
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{(tmp_path / 'app.db').as_posix()}")
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture()
def session_factory(engine):
    def factory():
        return Session(engine)

    return factory


@pytest.fixture()
def kv_store(session_factory):
    return SqliteKeyValueStore(session_factory)


@pytest.fixture()
def fake_sleep():
    return FakeSleep()


@pytest.fixture()
def backend():
    return FakeBackend()
