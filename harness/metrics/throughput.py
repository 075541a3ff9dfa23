"""Windowed request counter producing the instant throughput metric."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Optional

from common.models.metrics import INSTANT_RPS
from harness.core.clock import MonotonicClock
from harness.metrics.trend import TrendSink

logger = logging.getLogger(__name__)


class ThroughputCounter:
    """Count requests per window and emit one sample per closed window.

    ``tick()`` is called opportunistically (once per iteration start), so
    window boundaries are best-effort: a window closes when the first caller
    observes that it has elapsed. ``run_timer()`` is the precise alternative.

    The increment and the whole check-emit-reset sequence share one lock:
    increments are never lost and each boundary is emitted exactly once.
    """

    def __init__(
        self,
        sink: TrendSink,
        metric: str = INSTANT_RPS,
        window: float = 1.0,
        clock: Optional[MonotonicClock] = None,
    ):
        self.sink = sink
        self.metric = metric
        self.window = window
        self.clock = clock or MonotonicClock()

        self._lock = threading.Lock()
        self._window_started_at = self.clock.now()
        self._count_in_window = 0
        self._total = 0

        sink.register(metric)

    @property
    def count_in_window(self) -> int:
        with self._lock:
            return self._count_in_window

    @property
    def total_requests(self) -> int:
        with self._lock:
            return self._total

    def reset(self, now: Optional[float] = None) -> None:
        """Start a fresh window (run start)."""
        with self._lock:
            self._window_started_at = self.clock.now() if now is None else now
            self._count_in_window = 0

    def record_request(self) -> None:
        """Count one request in the live window."""
        with self._lock:
            self._count_in_window += 1
            self._total += 1

    def tick(self, now: Optional[float] = None) -> Optional[int]:
        """Close the window if it has elapsed; return the emitted count."""
        if now is None:
            now = self.clock.now()

        with self._lock:
            if now - self._window_started_at < self.window:
                return None

            closed = self._count_in_window
            self._count_in_window = 0
            self._window_started_at = now
            self.sink.record(self.metric, closed)

        logger.debug(f"{self.metric}: {closed} requests in closed window")
        return closed

    async def run_timer(self, stop_event: asyncio.Event) -> None:
        """Tick every window until ``stop_event`` is set."""
        while not stop_event.is_set():
            await self.clock.sleep(self.window)
            self.tick()
