"""Cancellable delayed reconnect for a single session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SECONDS = 2.0


class ReconnectScheduler:
    """Runs at most one pending reconnect callback after a fixed delay."""

    def __init__(self, delay_seconds: float = RECONNECT_DELAY_SECONDS) -> None:
        self._delay_seconds = delay_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, callback: Callable[[], Awaitable[None]]) -> None:
        """Schedule ``callback``, replacing any reconnect still waiting."""
        self.cancel()
        self._task = asyncio.create_task(self._run(callback))

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def wait(self) -> None:
        """Wait for the pending reconnect, if any, to finish or be cancelled."""
        if self._task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await self._task

    async def _run(self, callback: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(self._delay_seconds)
        try:
            await callback()
        except Exception:
            logger.exception("Reconnect attempt failed")
