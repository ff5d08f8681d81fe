"""
Background scheduler driving the sync engine.

Runs the engine's phases one at a time in the default executor and waits
``push_delay`` seconds between the end of one apply phase and the start
of the next push.
"""

import asyncio
import logging
from typing import Optional

from common.constants import PUSH_DELAY_SECONDS
from bansync.engine import SyncEngine, SyncState
from bansync.exceptions import EngineHaltedError

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Manages the periodic ban synchronization task.
    """

    def __init__(self, engine: SyncEngine, push_delay: float = PUSH_DELAY_SECONDS):
        """
        Initialize the scheduler.

        Args:
            engine: SyncEngine to drive
            push_delay: Seconds between an apply phase and the next push
        """
        self.engine = engine
        self.push_delay = push_delay
        self.task: Optional[asyncio.Task] = None
        self.running = False
        self._wakeup: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: Optional[asyncio.Future] = None

        # A halt raised outside the loop (event bridge writes) ends the wait early
        engine.add_halt_callback(lambda error: self.trigger())

    async def start(self):
        """Start the sync background task."""
        if self.running:
            logger.warning("Sync scheduler already running")
            return

        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        self.running = True
        self.task = asyncio.create_task(self._sync_loop())
        logger.info(f"Sync scheduler started [push_delay={self.push_delay}s]")

    async def stop(self):
        """Stop the sync task, abandoning any pending phase."""
        if not self.running:
            return

        self.running = False

        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass

        if self._pending is not None and not self._pending.done():
            # The executor thread cannot be interrupted; unload once its phase returns
            await asyncio.wait([self._pending])

        self.engine.unload()
        logger.info("Sync scheduler stopped")

    def trigger(self) -> None:
        """Cut the current wait short and start the next cycle now."""
        if self._loop is None or self._wakeup is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._wakeup.set)

    async def _wait(self) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=self.push_delay)
        except asyncio.TimeoutError:
            pass
        self._wakeup.clear()

    async def _sync_loop(self):
        """
        Main sync loop.

        One engine phase per iteration, run off the event loop since phases
        block on the database driver. Only the SCHEDULED state waits.
        """
        loop = asyncio.get_running_loop()

        while self.running:
            if self.engine.state is SyncState.SCHEDULED:
                await self._wait()
                if not self.running:
                    break

            try:
                self._pending = loop.run_in_executor(None, self.engine.step)
                await asyncio.shield(self._pending)
            except EngineHaltedError:
                break
            except Exception as e:
                self.engine.fail_closed(e)
                break

        if self.engine.halted:
            self.running = False
            logger.error("Ban synchronization stopped until restart")
