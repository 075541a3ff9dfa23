"""Ramp-stage scheduler driving the virtual user population."""

from __future__ import annotations

import asyncio
import itertools
import logging
import math
from typing import Any, Awaitable, Callable, Optional, Sequence

from common.models.execution import RunPhase, VirtualUserState
from common.models.metrics import VUS
from common.models.workload import RampStage
from common.utils import format_duration
from harness.core.clock import MonotonicClock
from harness.metrics.trend import TrendSink

logger = logging.getLogger(__name__)

Iteration = Callable[[], Awaitable[Any]]


def target_concurrency(
    stages: Sequence[RampStage],
    elapsed: float,
    start: int = 0,
) -> int:
    """Target virtual users ``elapsed`` seconds into the schedule.

    Each stage moves linearly from the previous stage's target (``start``
    before the first stage) to its own target, reaching it at the stage end.
    Past the last stage the last target holds.
    """
    elapsed = max(elapsed, 0.0)
    previous = start
    stage_start = 0.0

    for stage in stages:
        stage_end = stage_start + stage.duration
        if elapsed < stage_end:
            fraction = (elapsed - stage_start) / stage.duration
            return int(math.floor(previous + (stage.target - previous) * fraction))
        previous = stage.target
        stage_start = stage_end

    return previous


def stage_at(
    stages: Sequence[RampStage],
    elapsed: float,
) -> Optional[tuple[int, RampStage]]:
    """Index and stage active at ``elapsed``, or ``None`` once the schedule ended."""
    stage_start = 0.0
    for index, stage in enumerate(stages):
        stage_end = stage_start + stage.duration
        if max(elapsed, 0.0) < stage_end:
            return index, stage
        stage_start = stage_end
    return None


def phase_for(stages: Sequence[RampStage], elapsed: float, start: int = 0) -> RunPhase:
    """Classify the schedule position as ramp up, steady state or ramp down."""
    current = stage_at(stages, elapsed)
    if current is None:
        return RunPhase.GRACEFUL_STOP

    index, stage = current
    previous = stages[index - 1].target if index > 0 else start
    if stage.target > previous:
        return RunPhase.RAMP_UP
    if stage.target < previous:
        return RunPhase.RAMP_DOWN
    return RunPhase.STEADY_STATE


class VirtualUser:
    """One sequential simulated client.

    SPAWNED -> RUNNING_ITERATION -> (loop) -> RETIRING -> TERMINATED.
    ``retire()`` only takes effect between iterations; an in-flight
    iteration always runs to completion unless the scheduler cancels it
    after the graceful stop window.
    """

    def __init__(
        self,
        vu_id: int,
        iteration: Iteration,
        on_iteration: Optional[Callable[["VirtualUser"], None]] = None,
    ):
        self.vu_id = vu_id
        self.iteration = iteration
        self.on_iteration = on_iteration
        self.state = VirtualUserState.SPAWNED
        self.iterations = 0
        self.task: Optional[asyncio.Task] = None
        self._retire_requested = False

    @property
    def is_active(self) -> bool:
        """Counts toward live concurrency."""
        return not self._retire_requested and self.state != VirtualUserState.TERMINATED

    @property
    def is_done(self) -> bool:
        return self.task is not None and self.task.done()

    def retire(self) -> None:
        """Ask the user to stop after its current iteration."""
        self._retire_requested = True

    def start(self) -> asyncio.Task:
        self.task = asyncio.create_task(self.run(), name=f"vu-{self.vu_id}")
        return self.task

    async def run(self) -> None:
        """Run iterations back-to-back until retired."""
        try:
            while not self._retire_requested:
                self.state = VirtualUserState.RUNNING_ITERATION
                try:
                    await self.iteration()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"VU {self.vu_id}: iteration error: {e}", exc_info=True)

                self.iterations += 1
                if self.on_iteration is not None:
                    self.on_iteration(self)

                # Iterations that never suspend must not starve the event loop
                await asyncio.sleep(0)

            self.state = VirtualUserState.RETIRING
        finally:
            self.state = VirtualUserState.TERMINATED


class LoadScheduler:
    """Keep the number of active virtual users on the ramp-stage target.

    Every ``control_interval`` the target is recomputed from the elapsed time;
    shortfalls spawn new users, surpluses retire the newest ones. When the
    schedule ends, all users are retired and get ``graceful_stop`` seconds to
    finish their current iteration before being cancelled.
    """

    def __init__(
        self,
        stages: Sequence[RampStage],
        iteration: Iteration,
        clock: Optional[MonotonicClock] = None,
        control_interval: float = 0.1,
        graceful_stop: float = 30.0,
        sink: Optional[TrendSink] = None,
    ):
        self.stages = list(stages)
        self.iteration = iteration
        self.clock = clock or MonotonicClock()
        self.control_interval = control_interval
        self.graceful_stop = graceful_stop
        self.sink = sink

        self.history: list[tuple[float, int]] = []
        self.elapsed = 0.0
        self.target = 0
        self.vus_max = 0
        self.iterations = 0
        self.interrupted = 0

        self._users: list[VirtualUser] = []
        self._ids = itertools.count(1)
        self._stage_index: Optional[int] = None
        self._stop_requested = False
        self._finished = False

    @property
    def total_duration(self) -> float:
        return sum(stage.duration for stage in self.stages)

    @property
    def live_concurrency(self) -> int:
        """Users currently counted as active (not retiring)."""
        return sum(1 for vu in self._users if vu.is_active)

    @property
    def in_flight(self) -> int:
        """Users whose task has not finished, retiring ones included."""
        return sum(1 for vu in self._users if not vu.is_done)

    @property
    def stage_index(self) -> Optional[int]:
        return self._stage_index

    @property
    def phase(self) -> RunPhase:
        if self._finished:
            return RunPhase.DONE
        if self._stop_requested:
            return RunPhase.GRACEFUL_STOP
        return phase_for(self.stages, self.elapsed)

    def stop(self) -> None:
        """End the schedule early; in-flight iterations still get the grace window."""
        self._stop_requested = True

    def _count_iteration(self, vu: VirtualUser) -> None:
        self.iterations += 1

    def _scale_to(self, target: int) -> None:
        self._users = [vu for vu in self._users if vu.state != VirtualUserState.TERMINATED]
        active = [vu for vu in self._users if vu.is_active]

        shortfall = target - len(active)
        if shortfall > 0:
            for _ in range(shortfall):
                vu = VirtualUser(next(self._ids), self.iteration, self._count_iteration)
                self._users.append(vu)
                vu.start()
        elif shortfall < 0:
            for vu in active[shortfall:]:
                vu.retire()

        self.vus_max = max(self.vus_max, self.live_concurrency)

    def _log_stage(self, elapsed: float) -> None:
        current = stage_at(self.stages, elapsed)
        index = current[0] if current else None
        if index == self._stage_index or current is None:
            return

        self._stage_index = index
        stage = current[1]
        logger.info(
            f"Stage {index + 1}/{len(self.stages)}: "
            f"{stage.target} VUs over {format_duration(stage.duration)}"
        )

    async def run(self) -> None:
        """Run the whole schedule, then drain the remaining users."""
        started = self.clock.now()
        total = self.total_duration
        logger.info(
            f"Starting schedule: {len(self.stages)} stages, {format_duration(total)}"
        )

        while not self._stop_requested:
            self.elapsed = self.clock.now() - started
            if self.elapsed >= total:
                break

            self._log_stage(self.elapsed)
            self.target = target_concurrency(self.stages, self.elapsed)
            self._scale_to(self.target)

            live = self.live_concurrency
            self.history.append((self.elapsed, live))
            if self.sink is not None:
                self.sink.record(VUS, live)

            await self.clock.sleep(self.control_interval)

        if self._stop_requested:
            logger.info(f"Schedule stopped early at {self.elapsed:.1f}s")

        self.target = 0
        self._scale_to(0)
        self.history.append((self.clock.now() - started, 0))

        await self._drain()
        self._finished = True
        logger.info(
            f"Schedule finished: {self.iterations} iterations, "
            f"max {self.vus_max} VUs, {self.interrupted} interrupted"
        )

    async def _drain(self) -> None:
        """Wait up to ``graceful_stop`` for in-flight iterations, then cancel."""
        deadline = self.clock.now() + self.graceful_stop
        pending = [vu for vu in self._users if vu.task is not None and not vu.task.done()]
        if pending:
            logger.info(
                f"Waiting up to {format_duration(self.graceful_stop)} "
                f"for {len(pending)} in-flight iterations"
            )

        # The window may overrun by up to one control interval
        while pending and self.clock.now() < deadline:
            await self.clock.sleep(self.control_interval)
            pending = [vu for vu in pending if not vu.task.done()]

        if pending:
            logger.warning(f"Interrupting {len(pending)} iterations after graceful stop")
            for vu in pending:
                vu.task.cancel()
            await asyncio.gather(*(vu.task for vu in pending), return_exceptions=True)
            self.interrupted += len(pending)

        self._users = []
