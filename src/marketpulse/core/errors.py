"""Error kinds surfaced by the metrics and ranking engine."""

from __future__ import annotations


class MarketMetricsError(RuntimeError):
    """Base class for every error raised by marketpulse."""


class InvalidArgumentError(MarketMetricsError, ValueError):
    """Unknown metric type, negative limit, malformed date range and similar caller mistakes."""


class StorageError(MarketMetricsError):
    """The underlying event/aggregate store failed to read or write."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class AggregationConflict(MarketMetricsError):
    """An aggregate row for (metric type, date) already exists."""

    def __init__(self, metric_type: str, metric_date: str) -> None:
        super().__init__(f"{metric_type} already aggregated for {metric_date}")
        self.metric_type = metric_type
        self.metric_date = metric_date


class CurationAdapterError(MarketMetricsError):
    """A curation adapter failed or returned output that had to be discarded."""

    def __init__(self, adapter: str, message: str) -> None:
        super().__init__(f"{adapter}: {message}")
        self.adapter = adapter


class OperationTimeoutError(MarketMetricsError, TimeoutError):
    """A bounded operation exceeded its deadline."""

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        super().__init__(f"{operation} exceeded {timeout_seconds:.3f}s deadline")
        self.operation = operation
        self.timeout_seconds = timeout_seconds


__all__ = [
    "AggregationConflict",
    "CurationAdapterError",
    "InvalidArgumentError",
    "MarketMetricsError",
    "OperationTimeoutError",
    "StorageError",
]
