"""Value types for scraped metrics and their history."""

import math
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Sample:
    """One observation of a canonical metric.

    Attributes:
        timestamp: When the owning scrape completed.
        value: Observed value. NaN or Inf means "unavailable", never zero.
    """

    timestamp: datetime
    value: float

    @property
    def is_available(self) -> bool:
        """Check if the value is a finite number."""
        return math.isfinite(self.value)


@dataclass(frozen=True)
class MetricSnapshot:
    """Result of one successful scrape.

    Attributes:
        collected_at: Local wall-clock time the scrape finished.
        latency: Scrape duration in seconds, measured locally.
        values: One entry per canonical catalog key; missing data is NaN.
    """

    collected_at: datetime
    latency: float
    values: dict[str, float] = field(default_factory=dict)

    def value(self, key: str) -> float:
        """Get a value by canonical key, NaN if the key is unknown."""
        return self.values.get(key, math.nan)
