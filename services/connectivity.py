from __future__ import annotations

import asyncio
import inspect
from typing import Awaitable, Callable, Optional, Set

from core.log import get_logger
from core.settings import CONNECTIVITY


logger = get_logger("connectivity")

OnlineListener = Callable[[], object]
Probe = Callable[[], Awaitable[bool]]


class TcpProbe:
    """Report online when a TCP connection to ``host:port`` can be opened."""

    def __init__(
        self,
        host: str = CONNECTIVITY.probe_host,
        port: int = CONNECTIVITY.probe_port,
        timeout: float = CONNECTIVITY.probe_timeout_sec,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout

    async def __call__(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True


class ConnectivityMonitor:
    """Tracks online/offline state and notifies listeners on reconnect.

    Listeners run once per offline -> online transition. Async listeners are
    scheduled as tasks so a slow listener never blocks the signal source.
    """

    def __init__(
        self,
        probe: Optional[Probe] = None,
        *,
        initial: bool = True,
        poll_interval: float = CONNECTIVITY.poll_interval_sec,
    ) -> None:
        self.probe = probe
        self.poll_interval = poll_interval
        self._online = bool(initial)
        self._listeners: list[OnlineListener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._poller: Optional[asyncio.Task] = None

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: OnlineListener) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unsubscribe(self, callback: OnlineListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def set_online(self, online: bool) -> bool:
        """Apply a connectivity signal. Returns True on an offline -> online change."""

        online = bool(online)
        previous = self._online
        self._online = online
        if previous == online:
            return False
        if not online:
            logger.info("Connectivity lost")
            return False
        logger.info("Connectivity restored")
        self._emit_online()
        return True

    # ------------------------------------------------------------------
    # Polling
    @property
    def polling(self) -> bool:
        return self._poller is not None and not self._poller.done()

    def start(self) -> None:
        if self.probe is None or self.polling:
            return
        self._poller = asyncio.get_running_loop().create_task(self._poll())

    async def stop(self) -> None:
        poller, self._poller = self._poller, None
        if poller is not None:
            poller.cancel()
            try:
                await poller
            except asyncio.CancelledError:
                pass
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def check(self) -> bool:
        """Run the probe once and apply its result."""

        if self.probe is None:
            return self._online
        try:
            online = bool(await self.probe())
        except Exception as exc:
            logger.warning("Connectivity probe failed: %s", exc)
            online = False
        self.set_online(online)
        return online

    async def _poll(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self.poll_interval)

    # ------------------------------------------------------------------
    def _emit_online(self) -> None:
        for listener in list(self._listeners):
            try:
                result = listener()
            except Exception:
                logger.exception("Online listener %r failed", listener)
                continue
            if inspect.isawaitable(result):
                self._schedule(result)

    def _schedule(self, awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, dropping online listener result")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = loop.create_task(self._run_listener(awaitable))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _run_listener(awaitable) -> None:
        try:
            await awaitable
        except Exception:
            logger.exception("Online listener failed")


__all__ = ["ConnectivityMonitor", "TcpProbe"]
