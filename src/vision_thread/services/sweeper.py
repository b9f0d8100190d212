"""Periodic expiry of idle sessions."""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from vision_thread.services.store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class SessionSweeper:
    """Background task that removes sessions idle past the timeout."""

    store: SessionStore
    interval_seconds: float
    timeout: timedelta
    clock: Callable[[], datetime] = lambda: datetime.now(tz=UTC)
    _task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self) -> int:
        """Run a single sweep and return the number of sessions removed."""
        return self.store.sweep_expired(self.clock(), self.timeout)

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="session-sweeper")

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Session sweep failed")
