"""Run engine orchestrating one load test."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

from common.graphql.client import TemplateApiClient
from common.models.execution import RunPhase, RunState, RunStatus
from common.models.metrics import RunSummary
from common.models.workload import LoadProfile
from common.utils import format_duration, generate_run_id
from harness.config import HarnessSettings
from harness.core.clock import MonotonicClock
from harness.core.executor import WorkflowExecutor
from harness.core.scheduler import LoadScheduler
from harness.metrics.throughput import ThroughputCounter
from harness.metrics.trend import TrendSink
from harness.reporting.summary import SummaryReporter
from harness.reporting.thresholds import evaluate_thresholds
from harness.storage.report_store import ReportStore

logger = logging.getLogger(__name__)


class RunEngine:
    """Wire the metrics, executor, scheduler and reporter for one run.

    The engine owns the trend sink and the throughput counter and hands them
    to the executor by reference.
    """

    def __init__(
        self,
        settings: HarnessSettings,
        profile: LoadProfile,
        client: Optional[TemplateApiClient] = None,
        clock: Optional[MonotonicClock] = None,
        store: Optional[ReportStore] = None,
        run_id: Optional[str] = None,
    ):
        self.settings = settings
        self.profile = profile
        self.clock = clock or MonotonicClock()
        self.run_id = run_id or generate_run_id()

        self._owns_client = client is None
        self.client = client or TemplateApiClient(
            settings.api_url,
            timeout=settings.request_timeout,
            max_connections=settings.max_connections,
        )

        self.sink = TrendSink()
        self.counter = ThroughputCounter(self.sink, clock=self.clock)
        self.executor = WorkflowExecutor(
            self.client,
            self.sink,
            self.counter,
            poll_interval=settings.poll_interval,
            poll_deadline=settings.poll_deadline,
            clock=self.clock,
        )

        graceful_stop = (
            settings.graceful_stop
            if settings.graceful_stop is not None
            else profile.graceful_stop
        )
        self.scheduler = LoadScheduler(
            profile.stages,
            self.executor.run_iteration,
            clock=self.clock,
            control_interval=settings.control_interval,
            graceful_stop=graceful_stop,
            sink=self.sink,
        )

        self.store = store or ReportStore(
            settings.output_dir,
            summary_filename=settings.summary_filename,
            throughput_filename=settings.throughput_filename,
        )
        self.reporter = SummaryReporter(self.sink, self.store)

        self.state = RunState(run_id=self.run_id, planned_duration=profile.total_duration)
        self.summary: Optional[RunSummary] = None

    def get_state(self) -> RunState:
        """Snapshot of the live run state."""
        self.state.elapsed_seconds = self.scheduler.elapsed
        self.state.stage_index = self.scheduler.stage_index
        self.state.target_concurrency = self.scheduler.target
        self.state.live_concurrency = self.scheduler.live_concurrency
        self.state.in_flight = self.scheduler.in_flight
        self.state.iterations = self.scheduler.iterations
        if self.state.status == RunStatus.RUNNING:
            self.state.phase = self.scheduler.phase
        return self.state.model_copy()

    def stop(self) -> None:
        """Request a graceful early stop."""
        if self.state.is_finished:
            return
        state = self.get_state()
        logger.info(
            f"Stop requested for run {self.run_id} at {state.progress_percent:.0f}% "
            f"({state.in_flight} users in flight)"
        )
        self.state.status = RunStatus.STOPPING
        self.scheduler.stop()

    async def run(self) -> RunSummary:
        """Run the schedule, evaluate thresholds and write the report."""
        logger.info(
            f"Starting run {self.run_id} against {self.settings.api_url}: "
            f"{len(self.profile.stages)} stages, {format_duration(self.profile.total_duration)}, "
            f"peak {self.profile.max_target} VUs"
        )

        started_at = datetime.utcnow()
        started = self.clock.now()
        if self.state.status != RunStatus.STOPPING:
            self.state.status = RunStatus.RUNNING
        self.state.started_at = started_at
        self.counter.reset()

        timer_stop = asyncio.Event()
        timer_task: Optional[asyncio.Task] = None
        if self.settings.throughput_timer:
            timer_task = asyncio.create_task(self.counter.run_timer(timer_stop))

        final_status = RunStatus.COMPLETED
        try:
            await self.scheduler.run()
        except Exception as e:
            final_status = RunStatus.FAILED
            logger.error(f"Run failed: {self.run_id}: {e}", exc_info=True)
        finally:
            if timer_task is not None:
                timer_stop.set()
                timer_task.cancel()
                await asyncio.gather(timer_task, return_exceptions=True)
            if self._owns_client:
                await self.client.close()

        duration = self.clock.now() - started
        self.state.phase = RunPhase.REPORTING

        results = evaluate_thresholds(self.profile.thresholds, self.sink)
        completed_at = datetime.utcnow()
        summary = self.reporter.build_report(
            run_id=self.run_id,
            api_url=self.settings.api_url,
            status=final_status.value,
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=duration,
            profile=self.profile,
            iterations=self.scheduler.iterations,
            vus_max=self.scheduler.vus_max,
            interrupted=self.scheduler.interrupted,
            thresholds=results,
        )

        if not self.reporter.write(summary):
            logger.warning("Report artifacts were not fully written")

        self.state.status = final_status
        self.state.phase = RunPhase.DONE
        self.state.completed_at = completed_at
        self.summary = summary

        logger.info(
            f"Run {self.run_id} {final_status.value}: {summary.iterations} iterations, "
            f"thresholds {'passed' if summary.passed else 'FAILED'}"
        )
        return summary
