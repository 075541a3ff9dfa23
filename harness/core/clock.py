"""Time source used by the executor and scheduler."""

from __future__ import annotations

import asyncio
import time


class MonotonicClock:
    """Wall-clock time for real runs.

    ``now()`` is monotonic seconds; ``sleep()`` suspends the calling task.
    Tests swap in a clock whose ``sleep`` advances virtual time instead.
    """

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


def elapsed_ms(clock: MonotonicClock, since: float) -> float:
    """Milliseconds elapsed on ``clock`` since ``since``."""
    return (clock.now() - since) * 1000
