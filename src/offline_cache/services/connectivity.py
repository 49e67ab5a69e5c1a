"""Connectivity monitor.

Tracks whether the client believes it can reach the server. The state is set
by the platform (``set_online``), by failed commits (``report_unreachable``)
and optionally by a periodic health probe.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[bool]]


class ConnectivityMonitor:
    """Single source of truth for the online/offline state.

    Subscribers are notified synchronously, only on actual transitions.
    """

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._subscribers: list[Callable[[bool], None]] = []
        self._probe_task: asyncio.Task | None = None

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> bool:
        """Record the platform's network state.

        Returns:
            True if this changed the state
        """
        if online == self._online:
            return False
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for callback in list(self._subscribers):
            try:
                callback(online)
            except Exception:
                logger.exception("Connectivity subscriber failed")
        return True

    def report_unreachable(self) -> bool:
        """Mark the server unreachable after a request got no response."""
        return self.set_online(False)

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Register ``callback(online)`` for state transitions.

        Returns:
            Unsubscribe function
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def check(self, probe: Probe) -> bool:
        """Run ``probe`` once and record its outcome."""
        try:
            reachable = await probe()
        except Exception as e:
            logger.debug("Connectivity probe failed: %s", e)
            reachable = False
        self.set_online(reachable)
        return reachable

    @property
    def is_probing(self) -> bool:
        return self._probe_task is not None and not self._probe_task.done()

    def start_probe(self, probe: Probe, interval: float) -> None:
        """Probe reachability every ``interval`` seconds in the background."""
        if interval <= 0:
            raise ValueError("interval must be positive")
        if self.is_probing:
            return
        self._probe_task = asyncio.get_running_loop().create_task(self._probe_loop(probe, interval))

    async def stop_probe(self) -> None:
        task, self._probe_task = self._probe_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _probe_loop(self, probe: Probe, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.check(probe)
