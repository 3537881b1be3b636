"""
Stats Module - Black Box Interface

Purpose: Collect operation latencies and run counters, compute summaries
Interface: summarize(), StatSeries, MetricsCollector, StatSummary
Hidden: Quantile interpolation, rounding, window bookkeeping

Can be replaced with a metrics backend without affecting other modules.
"""

from .statistics import (
    DEFAULT_SERIES,
    MetricsCollector,
    RunCounters,
    StatSeries,
    StatSummary,
    WindowCounters,
    summarize,
)

__all__ = [
    "DEFAULT_SERIES",
    "MetricsCollector",
    "RunCounters",
    "StatSeries",
    "StatSummary",
    "WindowCounters",
    "summarize",
]
