"""Post-run threshold evaluation."""

from __future__ import annotations

import logging
import operator
from typing import Optional, Sequence

from common.models.metrics import (
    RunSummary,
    ThresholdResult,
    parse_threshold_expression,
    percentile_of,
)
from common.models.workload import Threshold
from harness.metrics.trend import TrendSink

logger = logging.getLogger(__name__)

OPERATORS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


def parse_expression(expression: str) -> tuple[str, str, float]:
    """Parse ``<stat><op><value>``; raises ValueError."""
    return parse_threshold_expression(expression)


def _stat_from_sink(sink: TrendSink, metric: str, stat: str) -> Optional[float]:
    if stat == "rate":
        return sink.rate(metric).rate

    pct = percentile_of(stat)
    if pct is not None:
        return sink.percentile(metric, pct)

    stats = sink.summarize(metric)
    if stats.is_empty and stat != "count":
        return None
    return stats.value_for(stat)


def _stat_from_summary(summary: RunSummary, metric: str, stat: str) -> Optional[float]:
    if stat == "rate":
        rate = summary.rates.get(metric)
        return rate.rate if rate is not None else None

    stats = summary.trends.get(metric)
    if stats is None or (stats.is_empty and stat != "count"):
        return None
    try:
        return stats.value_for(stat)
    except KeyError:
        return None


def _judge(threshold: Threshold, actual: Optional[float]) -> ThresholdResult:
    stat, op, limit = parse_expression(threshold.expression)

    if actual is None:
        return ThresholdResult(
            metric=threshold.metric,
            expression=threshold.expression,
            actual=None,
            passed=False,
            message="no samples",
        )

    passed = OPERATORS[op](actual, limit)
    return ThresholdResult(
        metric=threshold.metric,
        expression=threshold.expression,
        actual=actual,
        passed=passed,
        message="" if passed else f"{stat}={actual:.4g} violates {op}{limit:g}",
    )


def evaluate_thresholds(
    thresholds: Sequence[Threshold],
    sink: TrendSink,
) -> list[ThresholdResult]:
    """Evaluate every threshold against the data collected in ``sink``."""
    results = []
    for threshold in thresholds:
        stat, _, _ = parse_expression(threshold.expression)
        result = _judge(threshold, _stat_from_sink(sink, threshold.metric, stat))
        results.append(result)

        level = logging.INFO if result.passed else logging.WARNING
        logger.log(
            level,
            f"Threshold {threshold.metric} {threshold.expression}: "
            f"{'PASS' if result.passed else 'FAIL'} (actual={result.actual})",
        )
    return results


def evaluate_summary(
    thresholds: Sequence[Threshold],
    summary: RunSummary,
) -> list[ThresholdResult]:
    """Re-evaluate thresholds against a saved summary.

    Only the precomputed stats (avg, min, max, med, p(90), p(95), p(99),
    count, rate) are available offline; other percentiles count as missing.
    """
    results = []
    for threshold in thresholds:
        stat, _, _ = parse_expression(threshold.expression)
        results.append(_judge(threshold, _stat_from_summary(summary, threshold.metric, stat)))
    return results


def all_passed(results: Sequence[ThresholdResult]) -> bool:
    return all(result.passed for result in results)
