from __future__ import annotations

import asyncio
import time


class RateLimiter:
    """Keep at least ``delay_seconds`` between consecutive provider calls.

    The first call never waits. Meant for the sequential review loop; it is
    not safe to share between concurrently running tasks.
    """

    def __init__(self, delay_seconds: float = 0.1):
        if delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")
        self.delay_seconds = delay_seconds
        self._last_call: float | None = None

    async def wait(self) -> None:
        now = time.monotonic()
        if self._last_call is not None:
            remaining = self.delay_seconds - (now - self._last_call)
            if remaining > 0:
                await asyncio.sleep(remaining)
        self._last_call = time.monotonic()
