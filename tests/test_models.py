"""Unit tests for Pydantic models."""

from datetime import datetime
from pathlib import Path

import pytest
from pydantic import ValidationError

from common.exceptions import ProfileError
from common.models.execution import RunPhase, RunState, RunStatus
from common.models.metrics import (
    RateStats,
    RunSummary,
    TrendStats,
    parse_threshold_expression,
    percentile,
)
from common.models.workload import (
    LoadProfile,
    RampStage,
    TemplateStatus,
    Threshold,
    WorkItem,
    is_terminal,
)


class TestWorkloadModels:
    """Tests for profile and stage models."""

    def test_default_profile(self):
        """Test the default profile matches the reference ramp."""
        profile = LoadProfile()

        assert [s.target for s in profile.stages] == [500, 1500, 3000, 4000, 0]
        assert [s.duration for s in profile.stages] == [30, 60, 120, 60, 30]
        assert profile.total_duration == 300
        assert profile.max_target == 4000
        assert profile.graceful_stop == 30

        thresholds = {(t.metric, t.expression) for t in profile.thresholds}
        assert thresholds == {
            ("http_req_failed", "rate<0.1"),
            ("e2e_time", "p(95)<60000"),
            ("instant_rps", "p(99)>0"),
        }

    def test_stage_duration_strings(self):
        """Test stage durations accept k6 strings."""
        assert RampStage(target=10, duration="1m").duration == 60
        assert RampStage(target=10, duration="500ms").duration == 0.5

    def test_stage_rejects_negative_target(self):
        with pytest.raises(ValidationError):
            RampStage(target=-1, duration=10)

    def test_threshold_mapping_form(self, sample_profile_config):
        """Test the k6 ``{metric: [expr]}`` threshold form."""
        profile = LoadProfile(**sample_profile_config)

        assert profile.name == "smoke"
        assert profile.graceful_stop == 5
        assert len(profile.thresholds) == 2
        assert profile.thresholds[0].metric == "http_req_failed"
        assert profile.thresholds[0].expression == "rate<0.1"

    def test_threshold_invalid_expression(self):
        with pytest.raises(ValidationError):
            Threshold(metric="e2e_time", expression="p95 < banana")

    def test_profile_yaml_roundtrip(self, temp_dir: Path, sample_profile_config):
        """Test saving and loading a profile."""
        path = temp_dir / "smoke.yaml"
        LoadProfile(**sample_profile_config).to_yaml(path)

        loaded = LoadProfile.from_yaml(path)

        assert loaded.total_duration == 5
        assert [s.target for s in loaded.stages] == [10, 10, 0]

    def test_profile_missing_file(self, temp_dir: Path):
        with pytest.raises(ProfileError):
            LoadProfile.from_yaml(temp_dir / "missing.yaml")

    def test_profile_invalid_file(self, temp_dir: Path):
        """Test invalid profiles raise ProfileError, which is a ValueError."""
        path = temp_dir / "bad.yaml"
        path.write_text("stages:\n  - target: -5\n    duration: 10s\n")

        with pytest.raises(ValueError):
            LoadProfile.from_yaml(path)


class TestWorkItem:
    """Tests for the per-iteration work item."""

    def test_terminal_statuses(self):
        assert is_terminal("COMPLETED")
        assert is_terminal("FAILED")
        assert not is_terminal("PENDING")
        assert not is_terminal("PROCESSING")
        assert not is_terminal(None)

    def test_finish_once(self):
        """Test the final status can only be set once."""
        item = WorkItem(name="svc-abcdefgh", id="1")
        item.finish("COMPLETED", timed_out=False)

        assert item.finished
        assert item.outcome == "COMPLETED"
        with pytest.raises(RuntimeError):
            item.finish("FAILED", timed_out=False)

    def test_timed_out_outcome(self):
        """Test a deadline expiry keeps the last status."""
        item = WorkItem(name="svc-abcdefgh", id="1")
        item.finish("PROCESSING", timed_out=True)

        assert item.status == "PROCESSING"
        assert item.outcome == TemplateStatus.TIMED_OUT.value


class TestMetricModels:
    """Tests for statistics models."""

    def test_percentile_nearest_rank(self):
        values = [float(v) for v in range(1, 101)]

        assert percentile(values, 50) == 50
        assert percentile(values, 95) == 95
        assert percentile(values, 99) == 99
        assert percentile(values, 100) == 100
        assert percentile(values, 0) == 1

    def test_percentile_exact_rank(self):
        """Test ranks that land exactly on a sample are not rounded up."""
        assert percentile([float(v) for v in range(1, 26)], 28) == 7
        assert percentile([float(v) for v in range(1, 51)], 14) == 7

        for n in range(1, 201):
            values = [float(v) for v in range(1, n + 1)]
            for p in range(1, 100):
                expected_rank = max(-(-p * n // 100), 1)
                assert percentile(values, p) == expected_rank, (p, n)

    def test_percentile_empty(self):
        with pytest.raises(ValueError):
            percentile([], 50)

    def test_trend_stats(self):
        stats = TrendStats.from_values([4.0, 1.0, 3.0, 2.0])

        assert stats.count == 4
        assert stats.min == 1.0
        assert stats.max == 4.0
        assert stats.avg == 2.5
        assert stats.med == 2.0
        assert stats.value_for("p(95)") == 4.0
        assert stats.value_for("count") == 4.0

    def test_trend_stats_empty(self):
        """Test empty metrics report no values rather than zeros."""
        stats = TrendStats.from_values([])

        assert stats.is_empty
        assert stats.avg is None
        assert stats.p95 is None

    def test_value_for_unknown_percentile(self):
        stats = TrendStats.from_values([1.0])

        with pytest.raises(KeyError):
            stats.value_for("p(75)")

    def test_rate_stats(self):
        assert RateStats().rate is None

        stats = RateStats(total=20, failures=5)
        assert stats.rate == 0.25
        assert stats.passes == 15
        assert stats.to_json()["rate"] == 0.25

    @pytest.mark.parametrize("expr,expected", [
        ("rate<0.1", ("rate", "<", 0.1)),
        ("p(95)<60000", ("p(95)", "<", 60000.0)),
        ("p(99) > 0", ("p(99)", ">", 0.0)),
        ("avg<=250.5", ("avg", "<=", 250.5)),
        ("count>=1", ("count", ">=", 1.0)),
    ])
    def test_parse_threshold_expression(self, expr, expected):
        assert parse_threshold_expression(expr) == expected

    @pytest.mark.parametrize("expr", ["", "p95<1", "rate", "avg<<1", "p(101)<1", "median<5"])
    def test_parse_threshold_expression_invalid(self, expr):
        with pytest.raises(ValueError):
            parse_threshold_expression(expr)

    def test_run_summary_to_json(self):
        summary = RunSummary(
            run_id="run_1",
            api_url="http://testserver/graphql",
            status="completed",
            started_at=datetime(2024, 1, 1),
            trends={"e2e_time": TrendStats.from_values([1.0, 2.0])},
            rates={"http_req_failed": RateStats(total=4, failures=1)},
        )

        data = summary.to_json()

        assert data["started_at"] == "2024-01-01T00:00:00"
        assert data["trends"]["e2e_time"]["count"] == 2
        assert data["rates"]["http_req_failed"]["rate"] == 0.25

        restored = RunSummary.model_validate(data)
        assert restored.rates["http_req_failed"].failures == 1


class TestExecutionModels:
    """Tests for run state."""

    def test_run_state_defaults(self):
        state = RunState(run_id="run_1")

        assert state.status == RunStatus.PENDING
        assert state.phase == RunPhase.INIT
        assert not state.is_finished

    def test_progress(self):
        state = RunState(run_id="run_1", planned_duration=200, elapsed_seconds=50)

        assert state.progress_percent == 25.0

        state.elapsed_seconds = 400
        assert state.progress_percent == 100.0
