from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Awaitable, Callable, Dict, List, Optional

from core.errors import QueuePersistenceError
from core.log import get_logger
from core.settings import QUEUE
from datetime_utils import utc_now
from models.operation import OperationState, QueuedOperation
from services.connectivity import ConnectivityMonitor
from services.dispatch import BackendDispatcher
from services.offline_queue import OfflineQueue
from services.reconciliation import ReconciliationBridge
from services.retry import RetryPolicy, with_retry


logger = get_logger("drain")


@dataclass
class DrainReport:
    applied: List[QueuedOperation] = field(default_factory=list)
    retried: List[QueuedOperation] = field(default_factory=list)
    dead_lettered: List[QueuedOperation] = field(default_factory=list)
    skipped: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class DrainScheduler:
    """Replays queued operations one at a time in enqueue order.

    Only one pass runs at a time; calling ``drain`` while a pass is active is
    a no-op. A failing operation never blocks the ones queued after it, so
    ordering holds only up to the first failure in a dependent chain.
    """

    def __init__(
        self,
        queue: OfflineQueue,
        dispatcher: BackendDispatcher,
        bridge: ReconciliationBridge,
        *,
        policy: Optional[RetryPolicy] = None,
        dead_letter_threshold: int = QUEUE.dead_letter_threshold,
        connectivity: Optional[ConnectivityMonitor] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.queue = queue
        self.dispatcher = dispatcher
        self.bridge = bridge
        self.policy = policy
        self.dead_letter_threshold = dead_letter_threshold
        self.connectivity = connectivity
        self._sleep = sleep
        self._draining = False
        self.states: Dict[str, OperationState] = {}
        self.last_report: Optional[DrainReport] = None

    @property
    def is_draining(self) -> bool:
        return self._draining

    def state_of(self, op_id: str) -> Optional[OperationState]:
        return self.states.get(op_id)

    async def drain(self) -> DrainReport:
        if self._draining:
            logger.debug("Drain already in progress, skipping")
            return DrainReport(skipped=True)
        if self.connectivity is not None and not self.connectivity.is_online:
            logger.debug("Offline, drain postponed")
            return DrainReport(skipped=True)
        if not len(self.queue):
            return DrainReport(skipped=True)

        self._draining = True
        report = DrainReport(started_at=utc_now())
        try:
            snapshot = self.queue.snapshot()
            logger.info("Draining %d queued operation(s)", len(snapshot))
            for operation in snapshot:
                if self.queue.get(operation.id) is None:
                    # removed (e.g. cleared) after the snapshot was taken
                    continue
                try:
                    await self._process(operation, report)
                except Exception as exc:
                    logger.exception("Unexpected error while settling %s", operation.describe())
                    self.bridge.report_error(exc)
        finally:
            self._draining = False
            report.finished_at = utc_now()
            self.last_report = report
        logger.info(
            "Drain finished: %d applied, %d retried later, %d dropped",
            len(report.applied),
            len(report.retried),
            len(report.dead_lettered),
        )
        return report

    # ------------------------------------------------------------------
    async def _process(self, operation: QueuedOperation, report: DrainReport) -> None:
        self.states[operation.id] = OperationState.DISPATCHING
        try:
            result = await with_retry(
                partial(self.dispatcher.dispatch, operation),
                self.policy,
                sleep=self._sleep,
                label=operation.describe(),
            )
        except Exception as exc:
            self._settle_failure(operation, exc, report)
            return
        self._settle_success(operation, result, report)

    def _settle_success(self, operation: QueuedOperation, result, report: DrainReport) -> None:
        try:
            self.queue.remove(operation.id)
        except QueuePersistenceError as exc:
            logger.error("Applied %s but could not remove it from the queue: %s", operation.describe(), exc)
            self.bridge.report_error(exc)
        self.states[operation.id] = OperationState.APPLIED
        report.applied.append(operation)
        logger.info("Applied %s", operation.describe())
        self.bridge.applied(operation, result)

    def _settle_failure(self, operation: QueuedOperation, exc: Exception, report: DrainReport) -> None:
        failed = operation.with_failed_attempt()
        dropped = False
        try:
            if failed.attempt_count >= self.dead_letter_threshold:
                self.queue.remove(operation.id)
                dropped = True
            else:
                failed = self.queue.record_failure(operation.id) or failed
        except QueuePersistenceError as persist_exc:
            logger.error("Could not persist failure of %s: %s", operation.describe(), persist_exc)
            self.bridge.report_error(persist_exc)
            failed = operation

        # a record that is still stored stays pending
        if dropped:
            self.states[operation.id] = OperationState.DEAD_LETTERED
            report.dead_lettered.append(failed)
            self.bridge.dead_lettered(failed, exc)
        else:
            self.states[operation.id] = OperationState.PENDING
            report.retried.append(failed)
            logger.warning(
                "Sync of %s failed (%d/%d), kept for the next drain: %s",
                operation.describe(),
                failed.attempt_count,
                self.dead_letter_threshold,
                exc,
            )


__all__ = ["DrainReport", "DrainScheduler"]
