"""Metrics and performance data models."""

from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Built-in metric names, matching the reference k6 scenario.
CREATE_TIME = "create_time"
POLL_TIME = "poll_time"
E2E_TIME = "e2e_time"
INSTANT_RPS = "instant_rps"
VUS = "vus"
HTTP_REQ_FAILED = "http_req_failed"

_PERCENTILE_STAT = re.compile(r'^p\((\d+(?:\.\d+)?)\)$')

_THRESHOLD_EXPRESSION = re.compile(
    r'^\s*(avg|min|max|med|count|rate|p\(\d+(?:\.\d+)?\))\s*(<=|>=|==|!=|<|>)\s*(-?\d+(?:\.\d+)?)\s*$'
)


def parse_threshold_expression(expression: str) -> tuple[str, str, float]:
    """Split 'p(95)<60000' into ('p(95)', '<', 60000.0)."""
    match = _THRESHOLD_EXPRESSION.match(expression or "")
    if not match:
        raise ValueError(f"Invalid threshold expression: {expression!r}")

    stat, op, value = match.groups()
    pct = _PERCENTILE_STAT.match(stat)
    if pct and float(pct.group(1)) > 100:
        raise ValueError(f"Percentile out of range in: {expression!r}")
    return stat, op, float(value)


def percentile_of(stat: str) -> Optional[float]:
    """Return N for a 'p(N)' stat name, else None."""
    match = _PERCENTILE_STAT.match(stat)
    if match:
        return float(match.group(1))
    return None


def percentile(sorted_values: list[float], p: float) -> float:
    """Nearest-rank percentile of an ascending-sorted, non-empty list."""
    if not sorted_values:
        raise ValueError("percentile of empty sample set")
    if p < 0 or p > 100:
        raise ValueError(f"Percentile out of range: {p}")

    n = len(sorted_values)
    # Rounded so that exact ranks such as 28% of 25 are not pushed up by float error
    rank = math.ceil(round(p * n / 100, 9))
    index = min(max(rank - 1, 0), n - 1)
    return sorted_values[index]


class Sample(BaseModel):
    """One immutable observation on a named metric."""
    model_config = ConfigDict(frozen=True)

    metric: str = Field(..., description="Metric name")
    value: float = Field(..., description="Observed value")
    tags: dict[str, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class TrendStats(BaseModel):
    """Summary statistics of a trend metric.

    All values are ``None`` when the metric has no samples, so an empty
    metric never reads as a zero-latency result.
    """
    count: int = Field(default=0, description="Number of samples")
    min: Optional[float] = Field(default=None, description="Minimum value")
    max: Optional[float] = Field(default=None, description="Maximum value")
    avg: Optional[float] = Field(default=None, description="Mean value")
    med: Optional[float] = Field(default=None, description="Median (p50)")
    p90: Optional[float] = Field(default=None, description="90th percentile")
    p95: Optional[float] = Field(default=None, description="95th percentile")
    p99: Optional[float] = Field(default=None, description="99th percentile")

    @classmethod
    def from_values(cls, values: list[float]) -> "TrendStats":
        """Compute statistics over a sample set (any order)."""
        if not values:
            return cls()

        ordered = sorted(values)
        return cls(
            count=len(ordered),
            min=ordered[0],
            max=ordered[-1],
            avg=sum(ordered) / len(ordered),
            med=percentile(ordered, 50),
            p90=percentile(ordered, 90),
            p95=percentile(ordered, 95),
            p99=percentile(ordered, 99),
        )

    @property
    def is_empty(self) -> bool:
        return self.count == 0

    def value_for(self, stat: str) -> Optional[float]:
        """Look up a stat by its threshold name (``avg``, ``med``, ``p(95)``...)."""
        if stat == "count":
            return float(self.count)
        if stat in ("min", "max", "avg", "med"):
            return getattr(self, stat)

        match = _PERCENTILE_STAT.match(stat)
        if match:
            key = f"p{match.group(1)}"
            if key == "p50":
                return self.med
            if key in ("p90", "p95", "p99"):
                return getattr(self, key)

        raise KeyError(f"Stat not precomputed: {stat}")


class RateStats(BaseModel):
    """Share of failed observations in a rate metric."""
    total: int = Field(default=0)
    failures: int = Field(default=0)

    @property
    def passes(self) -> int:
        return self.total - self.failures

    @property
    def rate(self) -> Optional[float]:
        """Failure ratio in [0, 1], or ``None`` without observations."""
        if self.total == 0:
            return None
        return self.failures / self.total

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "total": self.total,
            "failures": self.failures,
            "passes": self.passes,
            "rate": self.rate,
        }


class ThresholdResult(BaseModel):
    """Verdict of one threshold expression."""
    metric: str
    expression: str
    actual: Optional[float] = None
    passed: bool
    message: str = ""


class ThroughputPoint(BaseModel):
    """One closed throughput window."""
    ts: datetime
    value: float


class RunSummary(BaseModel):
    """Final run summary with aggregate results."""
    run_id: str
    api_url: str
    status: str

    # Timing
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0
    planned_duration_seconds: float = 0

    # Schedule
    stages: list[dict] = Field(default_factory=list)
    vus_max: int = 0
    iterations: int = 0
    interrupted_iterations: int = 0

    # Results
    trends: dict[str, TrendStats] = Field(default_factory=dict)
    tagged_trends: dict[str, dict[str, TrendStats]] = Field(default_factory=dict)
    rates: dict[str, RateStats] = Field(default_factory=dict)

    # Verdict
    thresholds: list[ThresholdResult] = Field(default_factory=list)
    passed: bool = True

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict."""
        data = self.model_dump(mode="json", exclude={"rates"})
        data["rates"] = {name: stats.to_json() for name, stats in self.rates.items()}
        return data
