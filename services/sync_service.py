from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from sqlmodel import SQLModel

from core.errors import AppError, QueuePersistenceError, offline_notice
from core.log import get_logger
from core.settings import QUEUE
from datetime_utils import to_rfc3339_utc, utc_now
from models.operation import EntityType, OperationKind, QueuedOperation
from models.payloads import MutationPayload, parse_payload
from services.connectivity import ConnectivityMonitor
from services.dispatch import BackendDispatcher
from services.drain import DrainReport, DrainScheduler
from services.offline_queue import OfflineQueue
from services.reconciliation import LiveState, ReconciliationBridge, SettlementListener
from services.retry import RetryPolicy, with_retry
from storage.kv import KeyValueStore


logger = get_logger("service")


class MutationStatus(str, Enum):
    APPLIED = "applied"
    QUEUED = "queued"
    FAILED = "failed"


@dataclass(frozen=True)
class MutationResult:
    status: MutationStatus
    operation: Optional[QueuedOperation] = None
    record: Optional[SQLModel] = None
    notice: Optional[AppError] = None


class OfflineSyncService:
    """Entry point used by mutation call sites.

    Owned by the application root: construct it, ``await initialize()`` on
    startup and ``await dispose()`` on shutdown.
    """

    def __init__(
        self,
        store: KeyValueStore,
        dispatcher: BackendDispatcher,
        *,
        state: Optional[LiveState] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        policy: Optional[RetryPolicy] = None,
        key: str = QUEUE.storage_key,
        dead_letter_threshold: int = QUEUE.dead_letter_threshold,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.dispatcher = dispatcher
        self.policy = policy
        self.connectivity = connectivity or ConnectivityMonitor()
        self.queue = OfflineQueue(store, key)
        self.bridge = ReconciliationBridge(state)
        self.scheduler = DrainScheduler(
            self.queue,
            dispatcher,
            self.bridge,
            policy=policy,
            dead_letter_threshold=dead_letter_threshold,
            connectivity=self.connectivity,
            sleep=sleep,
        )
        self._sleep = sleep
        self._initialized = False

    @property
    def state(self) -> LiveState:
        return self.bridge.state

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ------------------------------------------------------------------
    # Lifecycle
    async def initialize(self) -> None:
        if self._initialized:
            return
        pending = self.queue.load()
        logger.info("Offline sync starting with %d queued operation(s)", len(pending))
        self.connectivity.subscribe(self._on_online)
        self.connectivity.start()
        self._initialized = True
        if self.connectivity.is_online and pending:
            await self.drain()

    async def dispose(self) -> None:
        if not self._initialized:
            return
        self.connectivity.unsubscribe(self._on_online)
        await self.connectivity.stop()
        self._initialized = False
        logger.info("Offline sync stopped")

    def _on_online(self):
        return self.drain()

    # ------------------------------------------------------------------
    # Public API
    async def enqueue_or_dispatch(
        self,
        kind: OperationKind,
        entity_type: EntityType,
        payload: Union[MutationPayload, Mapping[str, Any]],
    ) -> MutationResult:
        try:
            kind = OperationKind(kind)
            entity_type = EntityType(entity_type)
            payload = parse_payload(entity_type, kind, payload)
        except ValueError as exc:
            logger.warning("Rejected %s %s: %s", getattr(kind, "value", kind), getattr(entity_type, "value", entity_type), exc)
            return MutationResult(MutationStatus.FAILED, notice=self.bridge.report_error(exc))

        if not self.connectivity.is_online:
            return self._enqueue(kind, entity_type, payload)

        operation = QueuedOperation(
            id=uuid.uuid4().hex,
            kind=kind,
            entity_type=entity_type,
            payload=payload,
            enqueued_at=utc_now(),
        )
        try:
            result = await with_retry(
                partial(self.dispatcher.dispatch, operation),
                self.policy,
                sleep=self._sleep,
                label=operation.describe(),
            )
        except Exception as exc:
            logger.error("Error in %s: %s", operation.describe(), exc)
            return MutationResult(
                MutationStatus.FAILED, operation=operation, notice=self.bridge.report_error(exc)
            )
        record = self.bridge.applied(operation, result)
        return MutationResult(MutationStatus.APPLIED, operation=operation, record=record)

    async def drain(self) -> DrainReport:
        return await self.scheduler.drain()

    def subscribe(self, listener: SettlementListener) -> None:
        self.bridge.subscribe(listener)

    def unsubscribe(self, listener: SettlementListener) -> None:
        self.bridge.unsubscribe(listener)

    @property
    def last_error(self) -> Optional[AppError]:
        return self.bridge.last_error

    def clear_error(self) -> None:
        self.bridge.clear_error()

    def status(self) -> dict:
        report = self.scheduler.last_report
        last_error = self.bridge.last_error
        return {
            "online": self.connectivity.is_online,
            "queueSize": self.queue.count(),
            "draining": self.scheduler.is_draining,
            "lastDrainAt": to_rfc3339_utc(report.finished_at) if report else None,
            "lastError": last_error.message if last_error else None,
        }

    # ------------------------------------------------------------------
    def _enqueue(self, kind: OperationKind, entity_type: EntityType, payload: MutationPayload) -> MutationResult:
        try:
            operation = self.queue.append(kind, entity_type, payload)
        except QueuePersistenceError as exc:
            logger.error("Could not queue %s %s: %s", kind.value, entity_type.value, exc)
            return MutationResult(MutationStatus.FAILED, notice=self.bridge.report_error(exc))
        notice = self.bridge.report_error(offline_notice(entity_type.value, kind.value))
        return MutationResult(MutationStatus.QUEUED, operation=operation, notice=notice)


__all__ = ["MutationResult", "MutationStatus", "OfflineSyncService"]
