"""Common data models for the load harness."""

from common.models.metrics import (
    Sample,
    TrendStats,
    RateStats,
    ThresholdResult,
    ThroughputPoint,
    RunSummary,
)
from common.models.workload import (
    TemplateStatus,
    RampStage,
    Threshold,
    LoadProfile,
    WorkItem,
)
from common.models.execution import RunStatus, RunPhase, RunState, VirtualUserState

__all__ = [
    "Sample",
    "TrendStats",
    "RateStats",
    "ThresholdResult",
    "ThroughputPoint",
    "RunSummary",
    "TemplateStatus",
    "RampStage",
    "Threshold",
    "LoadProfile",
    "WorkItem",
    "RunStatus",
    "RunPhase",
    "RunState",
    "VirtualUserState",
]
