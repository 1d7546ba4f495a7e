"""Catalog of canonical metric keys and the selectors that resolve them.

The dashboard only ever talks about canonical keys such as ``queue_depth``.
The catalog maps each key to the provider's actual metric name and label
filter, so deployments that export different names can be pointed at the
right series without code changes.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

import structlog

from reproq_tui.errors import ConfigError
from reproq_tui.metrics.selector import Selector, parse_selector

logger = structlog.get_logger(__name__)

METRIC_QUEUE_DEPTH = "queue_depth"
METRIC_TASKS_TOTAL = "tasks_total"
METRIC_TASKS_FAILED = "tasks_failed_total"
METRIC_TASKS_RUNNING = "tasks_running"
METRIC_WORKER_COUNT = "worker_count"
METRIC_CONCURRENCY_IN_USE = "concurrency_in_use"
METRIC_CONCURRENCY_LIMIT = "concurrency_limit"
METRIC_LATENCY_P95 = "latency_p95"
METRIC_WORKER_MEM_USAGE = "worker_mem_usage"
METRIC_DB_POOL_CONNECTIONS = "db_pool_conns"
METRIC_DB_POOL_WAIT = "db_pool_wait"

# Key whose summary/histogram families are reduced to a 0.95 quantile
LATENCY_QUANTILE_KEY = METRIC_LATENCY_P95

DEFAULT_MAPPING: dict[str, str] = {
    METRIC_QUEUE_DEPTH: "reproq_queue_depth",
    METRIC_TASKS_TOTAL: "reproq_tasks_processed_total",
    METRIC_TASKS_FAILED: 'reproq_tasks_processed_total{status="failure"}',
    METRIC_TASKS_RUNNING: "reproq_tasks_running",
    METRIC_WORKER_COUNT: "reproq_workers",
    METRIC_CONCURRENCY_IN_USE: "reproq_concurrency_in_use",
    METRIC_CONCURRENCY_LIMIT: "reproq_concurrency_limit",
    METRIC_LATENCY_P95: "reproq_exec_duration_seconds",
    METRIC_WORKER_MEM_USAGE: "reproq_worker_mem_usage_bytes",
    METRIC_DB_POOL_CONNECTIONS: "reproq_db_pool_connections_in_use",
    METRIC_DB_POOL_WAIT: "reproq_db_pool_wait_count_total",
}

_EMPTY_SELECTOR = Selector()


@dataclass
class Catalog:
    """Canonical key to selector mapping.

    Attributes:
        mapping: Canonical key to raw selector string.
        selectors: Canonical key to compiled Selector, used by the scraper.
    """

    mapping: dict[str, str] = field(default_factory=dict)
    selectors: dict[str, Selector] = field(default_factory=dict)

    def name(self, key: str) -> str:
        """Return the raw selector string for a key, or "" if absent."""
        return self.mapping.get(key) or ""

    def selector(self, key: str) -> Selector:
        """Return the compiled selector for a key, or the empty selector."""
        return self.selectors.get(key, _EMPTY_SELECTOR)

    def keys(self) -> list[str]:
        """Return every canonical key known to the catalog."""
        return list(self.selectors)


def compile_selectors(mapping: Mapping[str, str]) -> dict[str, Selector]:
    """Compile every raw selector string in a mapping."""
    return {key: parse_selector(raw) for key, raw in mapping.items()}


def default_catalog() -> Catalog:
    """Build the catalog for a stock reproq worker."""
    mapping = dict(DEFAULT_MAPPING)
    return Catalog(mapping=mapping, selectors=compile_selectors(mapping))


def new_catalog(overrides: Mapping[str, str] | None = None) -> Catalog:
    """Build a catalog from the defaults plus user overrides.

    Args:
        overrides: Canonical key to selector string. Empty values are
            ignored so a blank setting never erases a default.

    Returns:
        A catalog whose selectors reflect the applied overrides.
    """
    catalog = default_catalog()
    for key, value in (overrides or {}).items():
        if value:
            catalog.mapping[key] = value
    catalog.selectors = compile_selectors(catalog.mapping)
    logger.debug(
        "catalog_built",
        keys=len(catalog.mapping),
        overrides=sorted(k for k, v in (overrides or {}).items() if v),
    )
    return catalog


def parse_overrides(pairs: Iterable[str]) -> dict[str, str]:
    """Parse ``canonical=selector`` strings into an override mapping.

    Only the first ``=`` separates key from selector, so selectors with
    label filters are passed through intact.

    Args:
        pairs: Override strings, e.g. ``'queue_depth=jobs_waiting{queue="a"}'``.

    Returns:
        Canonical key to selector string.

    Raises:
        ConfigError: If a pair has no ``=`` or an empty key.
    """
    overrides: dict[str, str] = {}
    for pair in pairs:
        text = pair.strip()
        if not text:
            continue
        key, sep, value = text.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ConfigError(
                f"invalid metric override {pair!r}, expected key=selector",
                field="metrics",
            )
        overrides[key] = value.strip()
    return overrides
