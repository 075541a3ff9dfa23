from harness.reporting.thresholds import evaluate_summary, evaluate_thresholds
from harness.reporting.summary import SummaryReporter, format_summary_table

__all__ = [
    "evaluate_summary",
    "evaluate_thresholds",
    "SummaryReporter",
    "format_summary_table",
]
