"""Run summary building, persistence and console rendering."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

from common.exceptions import ReportWriteError
from common.models.metrics import (
    CREATE_TIME,
    E2E_TIME,
    HTTP_REQ_FAILED,
    INSTANT_RPS,
    POLL_TIME,
    VUS,
    RunSummary,
    ThresholdResult,
    TrendStats,
)
from common.models.workload import LoadProfile
from common.utils import format_duration
from harness.metrics.trend import TrendSink
from harness.storage.report_store import ReportStore

logger = logging.getLogger(__name__)

REPORTED_TRENDS = (CREATE_TIME, POLL_TIME, E2E_TIME, INSTANT_RPS, VUS)
REPORTED_RATES = (HTTP_REQ_FAILED,)
TAGGED_TRENDS = {E2E_TIME: "final"}


class SummaryReporter:
    """Turn the collected metrics into a ``RunSummary`` and write it out."""

    def __init__(self, sink: TrendSink, store: ReportStore):
        self.sink = sink
        self.store = store

    def build_report(
        self,
        *,
        run_id: str,
        api_url: str,
        status: str,
        started_at: datetime,
        completed_at: Optional[datetime] = None,
        duration_seconds: float = 0,
        profile: Optional[LoadProfile] = None,
        iterations: int = 0,
        vus_max: int = 0,
        interrupted: int = 0,
        thresholds: Sequence[ThresholdResult] = (),
    ) -> RunSummary:
        """Aggregate every metric; metrics without samples report ``count: 0``."""
        trend_names = sorted(set(REPORTED_TRENDS) | set(self.sink.trend_names()))
        rate_names = sorted(set(REPORTED_RATES) | set(self.sink.rate_names()))

        trends = {name: self.sink.summarize(name) for name in trend_names}
        tagged = {
            name: self.sink.summarize_by_tag(name, tag)
            for name, tag in TAGGED_TRENDS.items()
        }
        rates = {name: self.sink.rate(name) for name in rate_names}

        return RunSummary(
            run_id=run_id,
            api_url=api_url,
            status=status,
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=round(duration_seconds, 3),
            planned_duration_seconds=profile.total_duration if profile else 0,
            stages=[stage.model_dump() for stage in profile.stages] if profile else [],
            vus_max=vus_max,
            iterations=iterations,
            interrupted_iterations=interrupted,
            trends=trends,
            tagged_trends=tagged,
            rates=rates,
            thresholds=list(thresholds),
            passed=all(result.passed for result in thresholds),
        )

    def throughput_series(self) -> dict:
        """The trimmed throughput artifact: one point per closed window."""
        samples = self.sink.samples(INSTANT_RPS)
        return {
            "metric": INSTANT_RPS,
            "points": [
                {"ts": s.timestamp.isoformat(), "value": s.value} for s in samples
            ],
            "values": self.sink.summarize(INSTANT_RPS).model_dump(),
        }

    def write(self, summary: RunSummary) -> bool:
        """Persist both artifacts. Failures are logged, never raised."""
        ok = True
        try:
            self.store.save_summary(summary.to_json())
        except ReportWriteError as e:
            logger.error(str(e))
            ok = False

        try:
            self.store.save_throughput(self.throughput_series())
        except ReportWriteError as e:
            logger.error(str(e))
            ok = False

        return ok


def _fmt(value: Optional[float], unit: str = "") -> str:
    if value is None:
        return "—"
    return f"{value:.2f}{unit}"


def _trend_row(name: str, stats: TrendStats, unit: str) -> str:
    if stats.is_empty:
        return f"{name:<24}{'(no samples)':>12}"
    return (
        f"{name:<24}{stats.count:>8}"
        f"{_fmt(stats.avg, unit):>12}{_fmt(stats.min, unit):>12}{_fmt(stats.med, unit):>12}"
        f"{_fmt(stats.max, unit):>12}{_fmt(stats.p90, unit):>12}"
        f"{_fmt(stats.p95, unit):>12}{_fmt(stats.p99, unit):>12}"
    )


def format_summary_table(summary: RunSummary) -> str:
    """Human-readable summary with the threshold verdict."""
    width = 112
    lines = [
        f"Run {summary.run_id} against {summary.api_url}",
        f"Status: {summary.status}   Duration: {format_duration(summary.duration_seconds)}   "
        f"Iterations: {summary.iterations}   Max VUs: {summary.vus_max}   "
        f"Interrupted: {summary.interrupted_iterations}",
        "-" * width,
        f"{'Metric':<24}{'Count':>8}{'Avg':>12}{'Min':>12}{'Med':>12}"
        f"{'Max':>12}{'P90':>12}{'P95':>12}{'P99':>12}",
        "-" * width,
    ]

    for name, stats in summary.trends.items():
        unit = "ms" if name.endswith("_time") else ""
        lines.append(_trend_row(name, stats, unit))

        for tag_value, tagged in summary.tagged_trends.get(name, {}).items():
            lines.append(_trend_row(f"  {{final:{tag_value}}}", tagged, unit))

    for name, rate in summary.rates.items():
        value = "—" if rate.rate is None else f"{rate.rate * 100:.2f}%"
        lines.append(f"{name:<24}{rate.total:>8}{value:>12}  ({rate.failures} failed)")

    if summary.thresholds:
        lines.append("-" * width)
        lines.append(f"{'Threshold':<40}{'Actual':>16}{'Status':>10}")
        for result in summary.thresholds:
            label = f"{result.metric} {result.expression}"
            status = "PASS" if result.passed else "FAIL"
            lines.append(f"{label:<40}{_fmt(result.actual):>16}{status:>10}")

    lines.append("-" * width)
    lines.append(f"Overall: {'PASS' if summary.passed else 'FAIL'}")
    return "\n".join(lines)
