"""Common utilities and models shared by the harness and the CLI."""

from common.models.workload import LoadProfile, RampStage, Threshold, WorkItem
from common.models.metrics import RunSummary, TrendStats
from common.models.execution import RunStatus, RunPhase

__all__ = [
    "LoadProfile",
    "RampStage",
    "Threshold",
    "WorkItem",
    "RunSummary",
    "TrendStats",
    "RunStatus",
    "RunPhase",
]
