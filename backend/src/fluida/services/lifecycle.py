"""
Recurring background loop with cooperative cancellation.

The loop owns one asyncio task and one stop event. Each tick waits for the
interval (or the stop signal, whichever comes first) and then awaits the
callback. Exceptions escaping a tick are logged and the loop carries on.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class PollLoop:
    """
    Run an async callback every ``interval`` seconds until stopped.

    ``start()`` may be called once per instance. ``stop()`` is idempotent
    and returns only after the in-flight tick has finished, so callers can
    release shared resources (RPC clients, database engines) afterwards.

    Example:
        loop = PollLoop(15.0, watcher.check_pending_invoices, name="payment-watcher")
        loop.start()
        ...
        await loop.stop()
    """

    def __init__(
        self,
        interval: float,
        tick: Callable[[], Awaitable[object]],
        name: str = "poll-loop",
    ) -> None:
        if interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {interval}")
        self.interval = interval
        self.name = name
        self._tick = tick
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._started = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self._started:
            raise RuntimeError(f"{self.name} has already been started")
        self._started = True
        self._task = asyncio.create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        """Signal cancellation and wait for the loop to exit."""
        self._stop_event.set()
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        logger.info(f"{self.name} started (interval {self.interval}s)")
        while not self._stop_event.is_set():
            if await self._wait_for_stop(self.interval):
                break
            try:
                await self._tick()
            except Exception:
                logger.exception(f"{self.name} tick failed")
        logger.info(f"{self.name} shutting down")

    async def _wait_for_stop(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds. Returns True if stop was requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout)
            return True
        except TimeoutError:
            return False
