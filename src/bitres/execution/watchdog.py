"""Stale-pending detection for wallet prompts and receipt waits.

A watched await that outlives stale_after_seconds fires on_stale once and
logs pending_stale. The await itself is never cancelled or altered; the
callback only lets a UI surface "still waiting" to the user.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from bitres.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

StaleCallback = Callable[[str, float], None]


class PendingWatchdog:
    """Watches awaits and reports the ones that take too long.

    Args:
        stale_after_seconds: Threshold after which a wait is considered stuck.
        on_stale: Called with (label, elapsed_seconds) when the threshold passes.
    """

    def __init__(
        self,
        stale_after_seconds: float = 5.0,
        on_stale: StaleCallback | None = None,
    ) -> None:
        self._stale_after = stale_after_seconds
        self._on_stale = on_stale

    async def watch(self, awaitable: Awaitable[T], label: str) -> T:
        """Await ``awaitable``, firing the stale callback if it runs long."""
        started = time.monotonic()
        timer = asyncio.create_task(self._fire_when_stale(label, started))
        try:
            return await awaitable
        finally:
            timer.cancel()

    async def _fire_when_stale(self, label: str, started: float) -> None:
        await asyncio.sleep(self._stale_after)
        elapsed = time.monotonic() - started
        logger.warning("pending_stale", label=label, elapsed_seconds=round(elapsed, 1))
        if self._on_stale is None:
            return
        try:
            self._on_stale(label, elapsed)
        except Exception:
            logger.warning("stale_callback_failed", label=label, exc_info=True)
