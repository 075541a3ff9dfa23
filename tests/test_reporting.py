"""Unit tests for the summary reporter and report store."""

import json
from datetime import datetime
from pathlib import Path

import pytest

from common.exceptions import ReportWriteError
from common.models.metrics import ThresholdResult
from common.models.workload import LoadProfile, RampStage
from harness.metrics.trend import TrendSink
from harness.reporting.summary import SummaryReporter, format_summary_table
from harness.storage.report_store import ReportStore


@pytest.fixture
def report_store(temp_dir: Path) -> ReportStore:
    """ReportStore writing into a temporary directory."""
    return ReportStore(temp_dir / "results")


@pytest.fixture
def filled_sink() -> TrendSink:
    sink = TrendSink()
    for value in [120, 150, 180]:
        sink.record("create_time", value)
    sink.record("e2e_time", 900, tags={"final": "COMPLETED", "timed_out": "false"})
    sink.record("e2e_time", 1100, tags={"final": "COMPLETED", "timed_out": "false"})
    sink.record("e2e_time", 30000, tags={"final": "PROCESSING", "timed_out": "true"})
    for value in [4, 6]:
        sink.record("instant_rps", value)
    for failed in [False, False, False, True]:
        sink.add_rate("http_req_failed", failed)
    return sink


def build(reporter: SummaryReporter, thresholds=()):
    return reporter.build_report(
        run_id="run_test",
        api_url="http://testserver/graphql",
        status="completed",
        started_at=datetime(2024, 1, 1, 12, 0, 0),
        completed_at=datetime(2024, 1, 1, 12, 0, 5),
        duration_seconds=5.0,
        profile=LoadProfile(stages=[RampStage(target=2, duration=5)]),
        iterations=3,
        vus_max=2,
        thresholds=thresholds,
    )


class TestReportStore:
    """Tests for ReportStore."""

    def test_save_and_get_summary(self, report_store: ReportStore):
        path = report_store.save_summary({"run_id": "run_1", "when": datetime(2024, 1, 1)})

        assert path.exists()
        assert report_store.get_summary()["run_id"] == "run_1"

    def test_get_missing(self, report_store: ReportStore):
        assert report_store.get_summary() is None

    def test_write_failure(self, temp_dir: Path):
        """Test an unwritable location raises ReportWriteError."""
        blocker = temp_dir / "blocker"
        blocker.write_text("not a directory")
        store = ReportStore(blocker / "results")

        with pytest.raises(ReportWriteError):
            store.save_summary({"run_id": "run_1"})


class TestSummaryReporter:
    """Tests for SummaryReporter."""

    def test_build_report(self, filled_sink: TrendSink, report_store: ReportStore):
        summary = build(SummaryReporter(filled_sink, report_store))

        assert summary.trends["create_time"].count == 3
        assert summary.trends["create_time"].avg == 150
        assert summary.trends["e2e_time"].count == 3
        assert summary.rates["http_req_failed"].rate == 0.25
        assert summary.planned_duration_seconds == 5
        assert summary.stages == [{"target": 2, "duration": 5.0}]
        assert summary.passed

    def test_empty_metrics_reported(self, report_store: ReportStore):
        """Test built-in metrics without samples report count 0."""
        summary = build(SummaryReporter(TrendSink(), report_store))

        for name in ("create_time", "poll_time", "e2e_time", "instant_rps"):
            assert summary.trends[name].count == 0
            assert summary.trends[name].avg is None
        assert summary.rates["http_req_failed"].rate is None

    def test_tagged_breakdown(self, filled_sink: TrendSink, report_store: ReportStore):
        summary = build(SummaryReporter(filled_sink, report_store))

        tagged = summary.tagged_trends["e2e_time"]
        assert tagged["COMPLETED"].count == 2
        assert tagged["COMPLETED"].avg == 1000
        assert tagged["PROCESSING"].count == 1

    def test_verdict_from_thresholds(self, filled_sink: TrendSink, report_store: ReportStore):
        failed = ThresholdResult(metric="e2e_time", expression="p(95)<1000", actual=30000, passed=False)

        summary = build(SummaryReporter(filled_sink, report_store), thresholds=[failed])

        assert not summary.passed

    def test_write(self, filled_sink: TrendSink, report_store: ReportStore):
        """Test both artifacts are written as JSON."""
        reporter = SummaryReporter(filled_sink, report_store)
        summary = build(reporter)

        assert reporter.write(summary)

        with open(report_store.summary_path) as f:
            data = json.load(f)
        assert data["run_id"] == "run_test"
        assert data["rates"]["http_req_failed"]["failures"] == 1

        with open(report_store.throughput_path) as f:
            throughput = json.load(f)
        assert throughput["metric"] == "instant_rps"
        assert [p["value"] for p in throughput["points"]] == [4.0, 6.0]
        assert throughput["values"]["max"] == 6.0

    def test_write_failure_is_logged(self, filled_sink: TrendSink, temp_dir: Path, caplog):
        blocker = temp_dir / "blocker"
        blocker.write_text("")
        reporter = SummaryReporter(filled_sink, ReportStore(blocker / "out"))

        assert reporter.write(build(reporter)) is False
        assert "Failed to write report" in caplog.text


def test_format_summary_table(filled_sink: TrendSink, report_store: ReportStore):
    failed = ThresholdResult(metric="e2e_time", expression="p(95)<1000", actual=30000, passed=False)
    summary = build(SummaryReporter(filled_sink, report_store), thresholds=[failed])

    table = format_summary_table(summary)

    assert "run_test" in table
    assert "create_time" in table
    assert "{final:COMPLETED}" in table
    assert "http_req_failed" in table
    assert "25.00%" in table
    assert "FAIL" in table
    assert table.strip().endswith("Overall: FAIL")
