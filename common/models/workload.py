"""Load profile and work item models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from common.exceptions import ProfileError
from common.models.metrics import (
    E2E_TIME,
    HTTP_REQ_FAILED,
    INSTANT_RPS,
    parse_threshold_expression,
)
from common.utils import load_yaml, parse_duration, save_yaml


class TemplateStatus(str, Enum):
    """Template generation status reported by the API."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"  # Local outcome only, never sent by the API


TERMINAL_STATUSES = frozenset({TemplateStatus.COMPLETED.value, TemplateStatus.FAILED.value})


def is_terminal(status: Optional[str]) -> bool:
    """Check if a status ends polling."""
    return status in TERMINAL_STATUSES


class RampStage(BaseModel):
    """One ramp stage: reach ``target`` virtual users over ``duration`` seconds."""
    target: int = Field(..., ge=0, description="Target concurrent virtual users")
    duration: float = Field(..., ge=0, description="Stage duration in seconds")

    @field_validator("duration", mode="before")
    @classmethod
    def parse_duration_string(cls, v):
        """Accept k6-style durations such as '30s' or '2m'."""
        if isinstance(v, str):
            return parse_duration(v)
        return v


class Threshold(BaseModel):
    """Post-run pass/fail assertion on one metric aggregate."""
    metric: str = Field(..., description="Metric name")
    expression: str = Field(..., description="Expression such as 'p(95)<60000'")

    @field_validator("expression")
    @classmethod
    def validate_expression(cls, v):
        """Reject expressions the evaluator cannot parse."""
        parse_threshold_expression(v)
        return v.strip()


def default_stages() -> list[RampStage]:
    """Reference ramp: fast start, three climbs, ramp down."""
    return [
        RampStage(target=500, duration=30),
        RampStage(target=1500, duration=60),
        RampStage(target=3000, duration=120),
        RampStage(target=4000, duration=60),
        RampStage(target=0, duration=30),
    ]


def default_thresholds() -> list[Threshold]:
    """Reference alerting thresholds."""
    return [
        Threshold(metric=HTTP_REQ_FAILED, expression="rate<0.1"),
        Threshold(metric=E2E_TIME, expression="p(95)<60000"),
        Threshold(metric=INSTANT_RPS, expression="p(99)>0"),
    ]


class LoadProfile(BaseModel):
    """Complete load profile: ramp stages plus thresholds."""
    name: str = Field(default="full_flow")
    stages: list[RampStage] = Field(default_factory=default_stages)
    thresholds: list[Threshold] = Field(default_factory=default_thresholds)
    graceful_stop: float = Field(
        default=30, ge=0,
        description="Seconds in-flight iterations may run after the last stage"
    )

    @field_validator("graceful_stop", mode="before")
    @classmethod
    def parse_graceful_stop(cls, v):
        if isinstance(v, str):
            return parse_duration(v)
        return v

    @field_validator("thresholds", mode="before")
    @classmethod
    def expand_threshold_mapping(cls, v):
        """Accept the k6 mapping form ``{metric: [expr, ...]}``."""
        if isinstance(v, dict):
            expanded = []
            for metric, expressions in v.items():
                if isinstance(expressions, str):
                    expressions = [expressions]
                for expression in expressions:
                    expanded.append({"metric": metric, "expression": expression})
            return expanded
        return v

    @property
    def total_duration(self) -> float:
        """Scheduled duration, excluding the graceful stop window."""
        return sum(stage.duration for stage in self.stages)

    @property
    def max_target(self) -> int:
        return max((stage.target for stage in self.stages), default=0)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "LoadProfile":
        """Load a profile from YAML; missing keys fall back to the defaults."""
        path = Path(path)
        if not path.exists():
            raise ProfileError(f"Profile not found: {path}")

        data = load_yaml(path)
        try:
            return cls(**data)
        except (ValidationError, ValueError, TypeError) as e:
            raise ProfileError(f"Invalid profile {path}: {e}") from e

    def to_yaml(self, path: str | Path) -> None:
        """Save the profile to YAML."""
        data = {
            "name": self.name,
            "stages": [
                {"target": s.target, "duration": s.duration} for s in self.stages
            ],
            "thresholds": [
                {"metric": t.metric, "expression": t.expression} for t in self.thresholds
            ],
            "graceful_stop": self.graceful_stop,
        }
        save_yaml(path, data)


class WorkItem(BaseModel):
    """Per-iteration state of one generated template."""
    name: str = Field(..., description="Generated service name")
    id: Optional[str] = Field(default=None, description="Server-assigned template id")
    submitted_at: datetime = Field(default_factory=datetime.utcnow)
    status: Optional[str] = Field(default=None, description="Last observed status")
    polls: int = Field(default=0, description="Poll requests issued")
    timed_out: bool = Field(default=False)
    finished: bool = Field(default=False)

    @property
    def outcome(self) -> str:
        """COMPLETED/FAILED, or TIMED_OUT when the deadline ended polling."""
        if self.timed_out:
            return TemplateStatus.TIMED_OUT.value
        return self.status or TemplateStatus.PENDING.value

    def finish(self, status: Optional[str], timed_out: bool) -> None:
        """Set the final status. May only happen once."""
        if self.finished:
            raise RuntimeError(f"Work item {self.id or self.name} already finished")
        self.status = status
        self.timed_out = timed_out
        self.finished = True
