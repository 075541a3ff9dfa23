from harness.metrics.trend import TrendSink
from harness.metrics.throughput import ThroughputCounter

__all__ = ["TrendSink", "ThroughputCounter"]
