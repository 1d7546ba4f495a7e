"""Metric selectors, scraping, time series storage and derived metrics."""

from reproq_tui.metrics.catalog import (
    DEFAULT_MAPPING,
    LATENCY_QUANTILE_KEY,
    METRIC_CONCURRENCY_IN_USE,
    METRIC_CONCURRENCY_LIMIT,
    METRIC_DB_POOL_CONNECTIONS,
    METRIC_DB_POOL_WAIT,
    METRIC_LATENCY_P95,
    METRIC_QUEUE_DEPTH,
    METRIC_TASKS_FAILED,
    METRIC_TASKS_RUNNING,
    METRIC_TASKS_TOTAL,
    METRIC_WORKER_COUNT,
    METRIC_WORKER_MEM_USAGE,
    Catalog,
    default_catalog,
    new_catalog,
    parse_overrides,
)
from reproq_tui.metrics.derived import delta, rate, ratio, window_cutoff
from reproq_tui.metrics.models import MetricSnapshot, Sample
from reproq_tui.metrics.ring import RingBuffer, SeriesStore, series_capacity
from reproq_tui.metrics.scrape import (
    histogram_quantile,
    parse_exposition,
    scrape,
    summary_quantile,
)
from reproq_tui.metrics.selector import Selector, parse_selector

__all__ = [
    # Catalog
    "DEFAULT_MAPPING",
    "LATENCY_QUANTILE_KEY",
    "METRIC_CONCURRENCY_IN_USE",
    "METRIC_CONCURRENCY_LIMIT",
    "METRIC_DB_POOL_CONNECTIONS",
    "METRIC_DB_POOL_WAIT",
    "METRIC_LATENCY_P95",
    "METRIC_QUEUE_DEPTH",
    "METRIC_TASKS_FAILED",
    "METRIC_TASKS_RUNNING",
    "METRIC_TASKS_TOTAL",
    "METRIC_WORKER_COUNT",
    "METRIC_WORKER_MEM_USAGE",
    "Catalog",
    "default_catalog",
    "new_catalog",
    "parse_overrides",
    # Selectors
    "Selector",
    "parse_selector",
    # Scraping
    "histogram_quantile",
    "parse_exposition",
    "scrape",
    "summary_quantile",
    # Storage
    "MetricSnapshot",
    "RingBuffer",
    "Sample",
    "SeriesStore",
    "series_capacity",
    # Derived
    "delta",
    "rate",
    "ratio",
    "window_cutoff",
]
