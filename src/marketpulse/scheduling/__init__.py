from .aggregation import DailyAggregationScheduler

__all__ = ["DailyAggregationScheduler"]
