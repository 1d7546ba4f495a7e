"""Scrape engine: fetch exposition text and reduce it to catalog values.

One scrape issues a single GET against the metrics endpoint, parses the body
with the Prometheus text parser and resolves every catalog key to a scalar:

- gauge / counter / untyped: sum of the matched series
- summary: sum of ``_sum``; for the latency key, the count-weighted 0.95
  quantile across the matched series
- histogram: sum of ``_sum``; for the latency key, the 0.95 quantile
  interpolated linearly between cumulative buckets

Keys that cannot be resolved are NaN, never omitted.
"""

import math
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog
from prometheus_client.parser import text_string_to_metric_families
from prometheus_client.samples import Sample as ExpositionSample

from reproq_tui.client import ReproqClient
from reproq_tui.errors import ExpositionParseError, StatusError
from reproq_tui.metrics.catalog import LATENCY_QUANTILE_KEY, Catalog
from reproq_tui.metrics.models import MetricSnapshot
from reproq_tui.metrics.selector import Selector

logger = structlog.get_logger(__name__)

LATENCY_QUANTILE = 0.95

# Labels that split one logical series into several exposition samples
_SERIES_LABELS = ("le", "quantile")


@dataclass
class Series:
    """One labelled series of a metric family, with its samples grouped.

    Attributes:
        labels: Series labels, excluding ``le`` and ``quantile``.
        value: Instantaneous value (gauge, counter, untyped).
        sample_sum: ``_sum`` of a summary or histogram.
        sample_count: ``_count`` of a summary or histogram.
        quantiles: Summary quantile to observed value.
        buckets: Histogram upper bound to cumulative count.
    """

    labels: dict[str, str]
    value: float = 0.0
    sample_sum: float = 0.0
    sample_count: float = 0.0
    quantiles: dict[float, float] = field(default_factory=dict)
    buckets: dict[float, float] = field(default_factory=dict)


@dataclass
class Family:
    """A parsed metric family.

    Attributes:
        name: Family name as reported by the parser.
        type: Family type (gauge, counter, summary, histogram, unknown...).
        series: Series of the family, in exposition order.
    """

    name: str
    type: str
    series: list[Series] = field(default_factory=list)


async def scrape(
    client: ReproqClient,
    url: str,
    catalog: Catalog,
    *,
    timeout: float | None = None,
) -> MetricSnapshot:
    """Scrape the metrics endpoint once and resolve every catalog key.

    Args:
        client: Shared HTTP client.
        url: Metrics endpoint URL.
        catalog: Catalog of canonical keys to resolve.
        timeout: Request timeout in seconds (defaults to the client's).

    Returns:
        Snapshot with one value per catalog key.

    Raises:
        TransportError: If the endpoint could not be reached.
        StatusError: If the endpoint answered with a non-2xx status.
        ExpositionParseError: If the body is not valid exposition text.
    """
    start = time.monotonic()
    response = await client.get(url, timeout=timeout)
    if not response.is_success:
        raise StatusError(response.status_code, url=url)

    families = parse_exposition(response.text)
    values = extract_catalog(families, catalog)
    latency = time.monotonic() - start

    logger.debug(
        "scrape_completed",
        url=url,
        families=len(families),
        latency_ms=round(latency * 1000, 2),
    )
    return MetricSnapshot(
        collected_at=datetime.now(UTC),
        latency=latency,
        values=values,
    )


def parse_exposition(text: str) -> dict[str, Family]:
    """Parse exposition text into families indexed by name.

    Counter families are reachable both by their base name and by the
    ``_total`` name they are exposed under. Untyped samples that the parser
    reports as separate single-sample families are merged back together.

    Raises:
        ExpositionParseError: If any line is malformed.
    """
    families: dict[str, Family] = {}
    try:
        for metric in text_string_to_metric_families(text):
            family = families.get(metric.name)
            if family is None or family.type != metric.type:
                family = Family(name=metric.name, type=metric.type)
                families[metric.name] = family
            _group_samples(family, metric.samples)
    except (ValueError, IndexError) as e:
        raise ExpositionParseError(
            f"invalid exposition text: {e}",
            details={"exception_type": type(e).__name__},
        ) from e

    for family in list(families.values()):
        if family.type == "counter":
            families.setdefault(f"{family.name}_total", family)
    return families


def _group_samples(family: Family, samples: Iterable[ExpositionSample]) -> None:
    index = {_label_key(series.labels): series for series in family.series}
    for sample in samples:
        labels = {k: v for k, v in sample.labels.items() if k not in _SERIES_LABELS}
        key = _label_key(labels)
        series = index.get(key)
        if series is None:
            series = Series(labels=labels)
            index[key] = series
            family.series.append(series)
        _apply_sample(family, series, sample.name, sample.labels, sample.value)


def _apply_sample(
    family: Family,
    series: Series,
    name: str,
    labels: Mapping[str, str],
    value: float,
) -> None:
    suffix = name[len(family.name) :] if name.startswith(family.name) else name
    if family.type == "summary":
        if suffix == "_sum":
            series.sample_sum += value
        elif suffix == "_count":
            series.sample_count += value
        elif "quantile" in labels:
            series.quantiles[float(labels["quantile"])] = value
    elif family.type == "histogram":
        if suffix == "_sum":
            series.sample_sum += value
        elif suffix == "_count":
            series.sample_count += value
        elif suffix == "_bucket" and "le" in labels:
            series.buckets[float(labels["le"])] = value
    elif family.type == "counter":
        if suffix == "_total":
            series.value += value
    elif suffix == "":
        series.value += value


def _label_key(labels: Mapping[str, str]) -> tuple[tuple[str, str], ...]:
    return tuple(sorted(labels.items()))


def extract_catalog(families: Mapping[str, Family], catalog: Catalog) -> dict[str, float]:
    """Resolve every catalog key against parsed families."""
    return {
        key: extract_metric_value(
            families,
            catalog.selector(key),
            quantile=key == LATENCY_QUANTILE_KEY,
        )
        for key in catalog.keys()
    }


def extract_metric_value(
    families: Mapping[str, Family],
    selector: Selector,
    *,
    quantile: bool = False,
) -> float:
    """Reduce the series matched by a selector to one scalar.

    Args:
        families: Parsed families indexed by name.
        selector: Family name and label filter.
        quantile: Reduce summaries/histograms to the latency quantile
            instead of summing ``_sum``.

    Returns:
        The reduced value, or NaN when nothing can be resolved.
    """
    if selector.is_empty:
        return math.nan
    family = families.get(selector.name)
    if family is None:
        return math.nan

    matched = filter_series(family.series, selector)

    if family.type in ("gauge", "counter", "unknown", "untyped"):
        return math.fsum(series.value for series in matched)
    if family.type == "summary":
        if quantile:
            value = summary_quantile(matched, LATENCY_QUANTILE)
            if not math.isnan(value):
                return value
        return math.fsum(series.sample_sum for series in matched)
    if family.type == "histogram":
        if quantile:
            value = histogram_quantile(matched, LATENCY_QUANTILE)
            if not math.isnan(value):
                return value
        return math.fsum(series.sample_sum for series in matched)
    return math.nan


def filter_series(series: list[Series], selector: Selector) -> list[Series]:
    """Keep series whose labels are a superset of the selector's labels."""
    if not selector.labels:
        return series
    return [s for s in series if selector.matches(s.labels)]


def summary_quantile(series: list[Series], quantile: float) -> float:
    """Count-weighted average of a summary quantile across series.

    Returns:
        The weighted quantile, or NaN if no series exposes the quantile or
        the total sample count is zero.
    """
    total = 0.0
    total_count = 0.0
    found = False
    for s in series:
        if quantile not in s.quantiles:
            continue
        found = True
        total += s.sample_count * s.quantiles[quantile]
        total_count += s.sample_count
    if not found or total_count == 0:
        return math.nan
    return total / total_count


def histogram_quantile(series: list[Series], quantile: float) -> float:
    """Estimate a quantile from cumulative histogram buckets.

    Cumulative counts for identical upper bounds are merged across series.
    The first bucket whose count reaches ``total * quantile`` holds the
    quantile; within it the value is interpolated linearly from zero to the
    bucket bound. An empty bucket returns its bound exactly.

    Returns:
        The estimated quantile, or NaN if there are no buckets or the total
        count is zero.
    """
    if not series:
        return math.nan

    bucket_counts: dict[float, float] = {}
    total_count = 0.0
    for s in series:
        total_count += s.sample_count
        for bound, count in s.buckets.items():
            bucket_counts[bound] = bucket_counts.get(bound, 0.0) + count

    if total_count == 0 or not bucket_counts:
        return math.nan

    target = total_count * quantile
    prev_count = 0.0
    for bound in sorted(bucket_counts):
        count = bucket_counts[bound]
        if count >= target:
            if count == prev_count:
                return bound
            return bound * (target - prev_count) / (count - prev_count)
        prev_count = count
    return math.nan
