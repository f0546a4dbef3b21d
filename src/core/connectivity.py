"""
Connectivity monitor
Turns raw online/offline signals into a debounced reconnect event and a
periodic heartbeat that only fires while online
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Set

logger = logging.getLogger(__name__)

Trigger = Callable[[], Awaitable[None]]
Probe = Callable[[], Awaitable[bool]]


class ConnectivityMonitor:
    """Produces reconnect and heartbeat triggers; never touches the queue"""

    def __init__(self, reconnect_grace: float = 2.0, heartbeat_interval: float = 300.0,
                 initially_online: bool = True, probe: Optional[Probe] = None,
                 probe_interval: float = 10.0, drain_timeout: float = 10.0):
        self.reconnect_grace = reconnect_grace
        self.heartbeat_interval = heartbeat_interval
        self.probe = probe
        self.probe_interval = probe_interval
        self.drain_timeout = drain_timeout

        self._online = initially_online
        self._reconnect_listeners: List[Trigger] = []
        self._heartbeat_listeners: List[Trigger] = []
        self._reconnect_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._probe_task: Optional[asyncio.Task] = None
        # Reconnect work past its grace period, no longer cancelled by flaps
        self._triggered: Set[asyncio.Task] = set()
        self.is_running = False

    @property
    def is_online(self) -> bool:
        return self._online

    def on_reconnect(self, callback: Trigger):
        self._reconnect_listeners.append(callback)

    def on_heartbeat(self, callback: Trigger):
        self._heartbeat_listeners.append(callback)

    def set_online(self, online: bool):
        """Feed a platform online/offline signal"""
        if online == self._online:
            return

        self._online = online
        if online:
            logger.info(f"Connectivity restored, reconnect in {self.reconnect_grace}s")
            self._cancel_reconnect()
            self._reconnect_task = asyncio.get_running_loop().create_task(self._debounced_reconnect())
        else:
            logger.info("Connectivity lost")
            self._cancel_reconnect()

    def _cancel_reconnect(self):
        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None

    async def _debounced_reconnect(self):
        await asyncio.sleep(self.reconnect_grace)
        if not self._online:
            return
        task = asyncio.current_task()
        self._triggered.add(task)
        task.add_done_callback(self._triggered.discard)
        self._reconnect_task = None
        logger.info("Reconnect confirmed")
        await self._fire(self._reconnect_listeners, "reconnect")

    async def _fire(self, listeners: List[Trigger], name: str):
        for callback in list(listeners):
            try:
                await callback()
            except Exception as e:
                logger.error(f"Error in {name} listener: {e}", exc_info=True)

    async def _heartbeat_loop(self):
        while self.is_running:
            await asyncio.sleep(self.heartbeat_interval)
            if self._online:
                await self._fire(self._heartbeat_listeners, "heartbeat")

    async def _probe_loop(self):
        while self.is_running:
            try:
                self.set_online(await self.probe())
            except Exception as e:
                logger.error(f"Connectivity probe failed: {e}", exc_info=True)
            await asyncio.sleep(self.probe_interval)

    async def start(self):
        if self.is_running:
            return

        self.is_running = True
        loop = asyncio.get_running_loop()
        self._heartbeat_task = loop.create_task(self._heartbeat_loop())
        if self.probe:
            self._probe_task = loop.create_task(self._probe_loop())

        logger.info("Connectivity monitor started")

    async def stop(self):
        self.is_running = False
        self._cancel_reconnect()

        for task in (self._heartbeat_task, self._probe_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._heartbeat_task = None
        self._probe_task = None
        await self._drain_triggered()
        logger.info("Connectivity monitor stopped")

    async def _drain_triggered(self):
        """Let running reconnect work finish, cancelling what outlasts drain_timeout"""
        if not self._triggered:
            return

        _, pending = await asyncio.wait(set(self._triggered), timeout=self.drain_timeout)
        if pending:
            logger.warning(f"Cancelling {len(pending)} reconnect tasks still running at shutdown")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
