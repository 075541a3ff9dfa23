from harness.storage.report_store import ReportStore

__all__ = ["ReportStore"]
