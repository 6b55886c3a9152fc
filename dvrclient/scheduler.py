"""Recurring poll timer for an online server session."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from dvrclient.config import REFRESH_INTERVAL_S

logger = logging.getLogger(__name__)


class PollingScheduler:
    """Calls *callback* every *interval* seconds until stopped.

    The first call happens one interval after :meth:`start`.  ``start`` and
    ``stop`` are synchronous so they can be driven from event callbacks; both
    are idempotent.
    """

    def __init__(self, callback: Callable[[], Any], interval: float = REFRESH_INTERVAL_S) -> None:
        self.callback = callback
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        """Whether the timer is currently active."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the timer on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.debug("Polling started (interval=%ss)", self.interval)

    def stop(self) -> None:
        """Stop the timer.  Safe to call from inside the callback."""
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.debug("Polling stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.callback()
            except Exception:  # noqa: BLE001
                logger.exception("Poll callback failed")
