"""Reconnection policy: fixed delay, one pending attempt, cancellable."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

_LOGGER = logging.getLogger(__name__)

DEFAULT_RECONNECT_INTERVAL = 30.0


class ReconnectController:
    """Schedules delayed connection attempts while retrying is enabled."""

    def __init__(
        self,
        interval: float = DEFAULT_RECONNECT_INTERVAL,
        *,
        enabled: bool = True,
    ) -> None:
        self.interval = interval
        self._enabled = enabled
        self._task: asyncio.Task[None] | None = None
        self._running: asyncio.Task[None] | None = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def pending(self) -> bool:
        """True while an attempt is scheduled and has not started yet."""
        return self._task is not None and not self._task.done()

    def schedule(self, attempt: Callable[[], Awaitable[object]]) -> bool:
        """Schedule one attempt after the fixed interval.

        Returns:
            True if an attempt was scheduled, False if retrying is disabled or
            one is already pending
        """
        if not self._enabled:
            return False
        if self.pending:
            _LOGGER.debug("Reconnect already scheduled")
            return False

        _LOGGER.info("Attempting to reconnect in %s seconds", self.interval)
        self._task = asyncio.create_task(self._run_after_delay(attempt))
        return True

    async def _run_after_delay(self, attempt: Callable[[], Awaitable[object]]) -> None:
        try:
            await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            _LOGGER.debug("Reconnect cancelled")
            raise
        # The attempt may schedule its own successor, so it moves out of _task.
        self._running, self._task = self._task, None
        if not self._enabled:
            self._running = None
            return
        try:
            await attempt()
        except asyncio.CancelledError:
            raise
        except Exception:
            _LOGGER.exception("Reconnection attempt failed")
        finally:
            if self._running is asyncio.current_task():
                self._running = None

    def cancel(self) -> None:
        """Cancel a pending attempt, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def disable(self) -> None:
        """Stop retrying for good and drop any pending attempt."""
        self._enabled = False
        self.cancel()
