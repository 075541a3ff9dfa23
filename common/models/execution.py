"""Execution models for load runs."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    """Run status states."""
    PENDING = "pending"
    RUNNING = "running"
    STOPPING = "stopping"
    COMPLETED = "completed"
    FAILED = "failed"


class RunPhase(str, Enum):
    """Current run phase."""
    INIT = "init"
    RAMP_UP = "ramp_up"
    STEADY_STATE = "steady_state"
    RAMP_DOWN = "ramp_down"
    GRACEFUL_STOP = "graceful_stop"
    REPORTING = "reporting"
    DONE = "done"


class VirtualUserState(str, Enum):
    """Lifecycle of one virtual user."""
    SPAWNED = "spawned"
    RUNNING_ITERATION = "running_iteration"
    RETIRING = "retiring"
    TERMINATED = "terminated"


class RunState(BaseModel):
    """Live state of a load run."""
    run_id: str = Field(..., description="Unique run identifier")
    status: RunStatus = Field(default=RunStatus.PENDING)
    phase: RunPhase = Field(default=RunPhase.INIT)

    # Timing
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    planned_duration: float = Field(default=0, description="Sum of stage durations")
    elapsed_seconds: float = Field(default=0)

    # Progress
    stage_index: Optional[int] = None
    target_concurrency: int = Field(default=0)
    live_concurrency: int = Field(default=0)
    in_flight: int = Field(default=0, description="Users still finishing an iteration")
    iterations: int = Field(default=0)

    @property
    def is_finished(self) -> bool:
        """Check if the run has finished."""
        return self.status in [RunStatus.COMPLETED, RunStatus.FAILED]

    @property
    def progress_percent(self) -> float:
        if self.planned_duration <= 0:
            return 100.0 if self.is_finished else 0.0
        return min(100.0, self.elapsed_seconds / self.planned_duration * 100)
