"""Fixed-capacity time series storage.

Each canonical metric key gets its own RingBuffer holding the most recent N
samples. Memory is allocated once at construction; once full, every new
sample overwrites the oldest one.
"""

import math
from collections.abc import Iterable
from datetime import datetime, timedelta

from reproq_tui.metrics.models import MetricSnapshot, Sample

MIN_SERIES_CAPACITY = 30
SERIES_CAPACITY_SLACK = 5


class RingBuffer:
    """Circular buffer of samples in insertion order.

    Args:
        capacity: Maximum number of samples kept; values below 1 become 1.
    """

    def __init__(self, capacity: int) -> None:
        capacity = max(1, capacity)
        self._samples: list[Sample | None] = [None] * capacity
        self._start = 0
        self._count = 0

    @property
    def capacity(self) -> int:
        """Fixed number of slots."""
        return len(self._samples)

    def __len__(self) -> int:
        return self._count

    def add(self, sample: Sample) -> None:
        """Append a sample, overwriting the oldest one when full."""
        size = len(self._samples)
        idx = (self._start + self._count) % size
        self._samples[idx] = sample
        if self._count < size:
            self._count += 1
            return
        self._start = (self._start + 1) % size

    def latest(self) -> Sample | None:
        """Return the most recently added sample, or None when empty."""
        if self._count == 0:
            return None
        idx = (self._start + self._count - 1) % len(self._samples)
        return self._samples[idx]

    def values(self) -> list[Sample]:
        """Return all samples, oldest first."""
        return self.values_since(None)

    def values_since(self, cutoff: datetime | None) -> list[Sample]:
        """Return samples at or after ``cutoff``, oldest first.

        Args:
            cutoff: Samples with an earlier timestamp are dropped. None
                disables filtering.

        Returns:
            A new list; the buffer's storage is never handed out.
        """
        size = len(self._samples)
        out: list[Sample] = []
        for i in range(self._count):
            sample = self._samples[(self._start + i) % size]
            if sample is None:
                continue
            if cutoff is not None and sample.timestamp < cutoff:
                continue
            out.append(sample)
        return out


def series_capacity(window: timedelta, interval: timedelta) -> int:
    """Number of samples needed to cover ``window`` at one per ``interval``.

    Adds a small slack for late polls and never goes below
    MIN_SERIES_CAPACITY.
    """
    if interval.total_seconds() <= 0:
        return MIN_SERIES_CAPACITY
    needed = int(window / interval) + SERIES_CAPACITY_SLACK
    return max(MIN_SERIES_CAPACITY, needed)


class SeriesStore:
    """One RingBuffer per canonical metric key.

    Buffers are created up front for the given keys and lazily for any key
    a snapshot introduces later. No buffer is shared between keys.

    Args:
        capacity: Capacity of every buffer.
        keys: Canonical keys to allocate immediately.
    """

    def __init__(self, capacity: int, keys: Iterable[str] = ()) -> None:
        self.capacity = max(1, capacity)
        self._series: dict[str, RingBuffer] = {key: RingBuffer(self.capacity) for key in keys}

    def __contains__(self, key: str) -> bool:
        return key in self._series

    def keys(self) -> list[str]:
        return list(self._series)

    def get(self, key: str) -> RingBuffer | None:
        """Return the buffer for a key, or None if it was never recorded."""
        return self._series.get(key)

    def add(self, key: str, sample: Sample) -> None:
        """Append a sample to a key's buffer, creating the buffer if needed."""
        series = self._series.get(key)
        if series is None:
            series = RingBuffer(self.capacity)
            self._series[key] = series
        series.add(sample)

    def record(self, snapshot: MetricSnapshot) -> None:
        """Append one sample per available snapshot value.

        Samples are stamped with ``collected_at``. NaN and Inf values are
        skipped so gaps never show up as zeros in the history.
        """
        for key, value in snapshot.values.items():
            if not math.isfinite(value):
                continue
            self.add(key, Sample(timestamp=snapshot.collected_at, value=value))

    def values_since(self, key: str, cutoff: datetime | None) -> list[Sample]:
        """Return a key's samples since ``cutoff``; empty for unknown keys."""
        series = self._series.get(key)
        if series is None:
            return []
        return series.values_since(cutoff)
