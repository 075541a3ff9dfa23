"""In-memory trend and rate metrics collected during a run."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from common.models.metrics import RateStats, Sample, TrendStats, percentile

logger = logging.getLogger(__name__)


class TrendMetric:
    """Append-only sample sequence for one metric name."""

    def __init__(self, name: str):
        self.name = name
        self._samples: list[Sample] = []
        self._lock = threading.Lock()

    def append(self, sample: Sample) -> None:
        with self._lock:
            self._samples.append(sample)

    def snapshot(self) -> list[Sample]:
        """Copy of the samples recorded so far, in insertion order."""
        with self._lock:
            return list(self._samples)

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)


class RateMetric:
    """Counts of passed and failed observations."""

    def __init__(self, name: str):
        self.name = name
        self._total = 0
        self._failures = 0
        self._lock = threading.Lock()

    def add(self, failed: bool) -> None:
        with self._lock:
            self._total += 1
            if failed:
                self._failures += 1

    def stats(self) -> RateStats:
        with self._lock:
            return RateStats(total=self._total, failures=self._failures)


class TrendSink:
    """Registry of named metrics shared by every virtual user.

    Metrics are created lazily on their first observation and live for the
    whole run. Appends take a per-metric lock; lookup/creation takes the
    registry lock.
    """

    def __init__(self):
        self._trends: dict[str, TrendMetric] = {}
        self._rates: dict[str, RateMetric] = {}
        self._lock = threading.Lock()

    def _trend(self, name: str) -> TrendMetric:
        with self._lock:
            metric = self._trends.get(name)
            if metric is None:
                metric = TrendMetric(name)
                self._trends[name] = metric
                logger.debug(f"Created trend metric: {name}")
            return metric

    def _rate(self, name: str) -> RateMetric:
        with self._lock:
            metric = self._rates.get(name)
            if metric is None:
                metric = RateMetric(name)
                self._rates[name] = metric
                logger.debug(f"Created rate metric: {name}")
            return metric

    def register(self, name: str) -> None:
        """Declare a trend metric so it is reported even without samples."""
        self._trend(name)

    def record(self, name: str, value: float, tags: Optional[dict[str, str]] = None) -> Sample:
        """Append one sample to a trend metric."""
        sample = Sample(metric=name, value=float(value), tags=dict(tags or {}))
        self._trend(name).append(sample)
        return sample

    def add_rate(self, name: str, failed: bool) -> None:
        """Add one pass/fail observation to a rate metric."""
        self._rate(name).add(failed)

    def samples(self, name: str, tags: Optional[dict[str, str]] = None) -> list[Sample]:
        """Samples of a metric, optionally only those carrying all ``tags``."""
        with self._lock:
            metric = self._trends.get(name)
        if metric is None:
            return []

        samples = metric.snapshot()
        if tags:
            samples = [
                s for s in samples
                if all(s.tags.get(k) == v for k, v in tags.items())
            ]
        return samples

    def values(self, name: str, tags: Optional[dict[str, str]] = None) -> list[float]:
        return [s.value for s in self.samples(name, tags)]

    def summarize(self, name: str, tags: Optional[dict[str, str]] = None) -> TrendStats:
        """Aggregate statistics over every sample recorded so far."""
        return TrendStats.from_values(self.values(name, tags))

    def summarize_by_tag(self, name: str, tag: str) -> dict[str, TrendStats]:
        """Statistics grouped by the value of one tag."""
        groups: dict[str, list[float]] = {}
        for sample in self.samples(name):
            if tag in sample.tags:
                groups.setdefault(sample.tags[tag], []).append(sample.value)
        return {
            value: TrendStats.from_values(values)
            for value, values in sorted(groups.items())
        }

    def percentile(self, name: str, p: float) -> Optional[float]:
        """Nearest-rank percentile of a metric, ``None`` when empty."""
        values = sorted(self.values(name))
        if not values:
            return None
        return percentile(values, p)

    def rate(self, name: str) -> RateStats:
        with self._lock:
            metric = self._rates.get(name)
        if metric is None:
            return RateStats()
        return metric.stats()

    def count(self, name: str) -> int:
        with self._lock:
            metric = self._trends.get(name)
        return len(metric) if metric is not None else 0

    def trend_names(self) -> list[str]:
        with self._lock:
            return sorted(self._trends)

    def rate_names(self) -> list[str]:
        with self._lock:
            return sorted(self._rates)
