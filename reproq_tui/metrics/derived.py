"""Derived metrics computed over chronologically ordered sample windows.

The inputs are treated as monotonically non-decreasing counters. A drop
between the first and last sample (e.g. a worker restart resetting its
counter) is clamped to zero movement instead of producing a negative value.
"""

import math
from collections.abc import Sequence
from datetime import datetime, timedelta

from reproq_tui.metrics.models import Sample


def rate(samples: Sequence[Sample]) -> float:
    """Per-second increase between the first and last sample.

    Returns:
        The rate, or NaN with fewer than two samples or no elapsed time.
    """
    if len(samples) < 2:
        return math.nan
    first, last = samples[0], samples[-1]
    delta = max(0.0, last.value - first.value)
    elapsed = (last.timestamp - first.timestamp).total_seconds()
    if elapsed <= 0:
        return math.nan
    return delta / elapsed


def delta(samples: Sequence[Sample]) -> float:
    """Increase between the first and last sample, clamped at zero."""
    if len(samples) < 2:
        return math.nan
    return max(0.0, samples[-1].value - samples[0].value)


def ratio(numerator: Sequence[Sample], denominator: Sequence[Sample]) -> float:
    """Ratio of two counter deltas over the same window.

    Returns:
        ``delta(numerator) / delta(denominator)``, or NaN if either delta is
        NaN or the denominator did not move.
    """
    n = delta(numerator)
    d = delta(denominator)
    if math.isnan(n) or math.isnan(d) or d == 0:
        return math.nan
    return n / d


def window_cutoff(window: timedelta, now: datetime) -> datetime | None:
    """Start of a trailing window ending at ``now``; None means unbounded."""
    if window <= timedelta(0):
        return None
    return now - window
