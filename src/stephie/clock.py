"""Time source shared by the caches and the request queue."""

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    """Wall-clock time plus a non-blocking sleep."""

    def now(self) -> float:
        """Current time in seconds since the epoch."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for ``seconds``."""
        ...


class SystemClock:
    """Clock backed by ``time.time`` and ``asyncio.sleep``."""

    def now(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


system_clock = SystemClock()
