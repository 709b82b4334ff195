"""Base class for the scanner and health-check background loops."""

from __future__ import annotations

import abc
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


class PeriodicTask(abc.ABC):
    """Runs :meth:`run_once` on its own timer until stopped.

    The next pass is scheduled only after the previous one has finished, so
    passes of the same task never overlap.  Several tasks may share one
    *stop_event*; setting it ends every loop at its next wait.

    Args:
        interval:      Seconds between the end of one pass and the next.
        initial_delay: Seconds to wait before the first pass.
        stop_event:    Shared cancellation token.  A private one is created
                       when omitted.
    """

    name = "periodic"

    def __init__(
        self,
        interval: float,
        initial_delay: float = 0.0,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self.interval = interval
        self.initial_delay = initial_delay
        self._stop = stop_event if stop_event is not None else asyncio.Event()
        self._task: asyncio.Task | None = None
        self._last_run: str | None = None
        self._last_result: dict[str, Any] | None = None

    @abc.abstractmethod
    async def run_once(self) -> dict[str, Any]:
        """Execute a single pass and return its stats."""
        raise NotImplementedError

    async def start(self) -> None:
        """Start the background loop."""
        if self.running:
            logger.warning("%s is already running", self.name)
            return
        self._task = asyncio.create_task(self._loop(), name=f"atrium-{self.name}")
        logger.info(
            "%s started (interval=%ss, first pass in %ss)",
            self.name, self.interval, self.initial_delay,
        )

    async def stop(self) -> None:
        """Cancel the loop.  An in-flight pass is abandoned, not awaited to completion."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("%s stopped", self.name)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_run(self) -> str | None:
        """ISO timestamp of the last completed pass, or None."""
        return self._last_run

    @property
    def last_result(self) -> dict[str, Any] | None:
        return self._last_result

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _loop(self) -> None:
        if await self._wait(self.initial_delay):
            return
        while True:
            try:
                result = await self.run_once()
                self._last_result = result
                self._last_run = datetime.now(timezone.utc).isoformat()
                logger.debug("%s pass complete: %s", self.name, result)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s pass failed", self.name)
            if await self._wait(self.interval):
                return

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*; return True if the stop token fired."""
        if self._stop.is_set():
            return True
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=max(seconds, 0))
        except asyncio.TimeoutError:
            return False
        return True
