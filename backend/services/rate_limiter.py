"""Fixed-interval gate used to space out per-account Graph API bursts."""

import asyncio
import time
from typing import Awaitable, Callable, Optional


class IntervalGate:
    """Lets one caller through per ``interval_seconds``.

    The first ``wait()`` returns immediately; later calls sleep for whatever is
    left of the interval since the previous pass. ``sleep`` and ``clock`` are
    injectable for tests.
    """

    def __init__(
        self,
        interval_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval_seconds = max(0.0, interval_seconds)
        self._sleep = sleep
        self._clock = clock
        self._last_pass: Optional[float] = None

    async def wait(self) -> None:
        if self._last_pass is not None and self.interval_seconds > 0:
            remaining = self.interval_seconds - (self._clock() - self._last_pass)
            if remaining > 0:
                await self._sleep(remaining)
        self._last_pass = self._clock()

    def reset(self) -> None:
        self._last_pass = None
