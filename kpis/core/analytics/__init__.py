from kpis.core.analytics.aggregate import EventAggregate, aggregate_events
from kpis.core.analytics.classify import classify_event
from kpis.core.analytics.stats import median, percentile, safe_ratio
from kpis.core.analytics.window import ALLOWED_WINDOWS, as_days, resolve_window

__all__ = [
    "ALLOWED_WINDOWS",
    "EventAggregate",
    "aggregate_events",
    "as_days",
    "classify_event",
    "median",
    "percentile",
    "resolve_window",
    "safe_ratio",
]
