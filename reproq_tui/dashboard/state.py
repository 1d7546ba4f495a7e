"""Dashboard state: everything the rendering layer reads.

DashboardState owns the metric catalog, one ring buffer per canonical key,
the event history and the connection status of every source. It is mutated
only through ``apply`` by the single dashboard loop; renderers use the
read-only accessors.
"""

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog

from reproq_tui.dashboard.messages import (
    EventReceived,
    HealthResult,
    Message,
    ScrapeResult,
    Source,
    StatsResult,
    StreamStateChanged,
    SubscriptionStarted,
)
from reproq_tui.errors import StatusError
from reproq_tui.events.buffer import DEFAULT_BUFFER_SIZE, EventBuffer
from reproq_tui.events.filter import EventFilter
from reproq_tui.events.models import Event
from reproq_tui.events.stream import StreamState
from reproq_tui.health import HealthStatus
from reproq_tui.metrics.catalog import (
    METRIC_TASKS_FAILED,
    METRIC_TASKS_TOTAL,
    Catalog,
)
from reproq_tui.metrics.derived import delta, rate, ratio, window_cutoff
from reproq_tui.metrics.models import MetricSnapshot, Sample
from reproq_tui.metrics.ring import SeriesStore
from reproq_tui.stats import FleetStats

logger = structlog.get_logger(__name__)

# Per-second rates derived from counters after every scrape
SERIES_THROUGHPUT = "throughput"
SERIES_ERRORS = "errors"

# Consecutive failures before a source is shown as unhealthy
UNHEALTHY_AFTER_FAILURES = 3


class ConnectionHealth(Enum):
    """Connection health of a source as shown to the operator."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class SourceStatus:
    """Connection status of a single source.

    Attributes:
        health: Current connection health.
        last_attempt: Timestamp of the last attempt.
        last_success: Timestamp of the last successful attempt.
        failure_count: Consecutive failure count.
        last_error: Last error, if the last attempt failed.
    """

    health: ConnectionHealth = ConnectionHealth.UNKNOWN
    last_attempt: datetime | None = None
    last_success: datetime | None = None
    failure_count: int = 0
    last_error: BaseException | None = None

    def mark_healthy(self, at: datetime) -> None:
        """Record a successful attempt."""
        self.health = ConnectionHealth.HEALTHY
        self.last_attempt = at
        self.last_success = at
        self.failure_count = 0
        self.last_error = None

    def mark_failed(self, error: BaseException, at: datetime) -> None:
        """Record a failed attempt; repeated failures turn it unhealthy."""
        self.last_attempt = at
        self.failure_count += 1
        self.last_error = error
        if self.failure_count >= UNHEALTHY_AFTER_FAILURES:
            self.health = ConnectionHealth.UNHEALTHY
        else:
            self.health = ConnectionHealth.DEGRADED

    @property
    def error_message(self) -> str | None:
        return str(self.last_error) if self.last_error else None


@dataclass
class StreamStatus:
    """Event stream connection status.

    Attributes:
        url: Subscribed URL, empty when not subscribed.
        state: Current stream state.
        generation: Subscription generation; bumps on every URL change.
        last_error: Error that caused the last backoff, if any.
    """

    url: str = ""
    state: StreamState = StreamState.STOPPED
    generation: int = 0
    last_error: BaseException | None = None


@dataclass
class DashboardState:
    """Aggregated dashboard state.

    Attributes:
        catalog: Canonical metric key to selector mapping.
        series: Ring buffers per canonical key plus derived series.
        events: Recent events, oldest first.
        window: Chart window used by the derived accessors.
        last_snapshot: Most recent successful scrape.
        last_health: Most recent health status.
        last_stats: Most recent fleet stats.
        sources: Connection status per polled source.
        stream: Event stream status.
        event_filter: Free-text filter applied by recent_events.
        auth_needed: Set when a source rejected our credentials.
    """

    catalog: Catalog
    series: SeriesStore
    events: EventBuffer = field(default_factory=lambda: EventBuffer(DEFAULT_BUFFER_SIZE))
    window: timedelta = timedelta(minutes=5)
    last_snapshot: MetricSnapshot | None = None
    last_health: HealthStatus | None = None
    last_stats: FleetStats | None = None
    sources: dict[Source, SourceStatus] = field(
        default_factory=lambda: {source: SourceStatus() for source in Source}
    )
    stream: StreamStatus = field(default_factory=StreamStatus)
    event_filter: EventFilter = field(default_factory=EventFilter)
    auth_needed: bool = False
    _last_counters: dict[str, Sample] = field(default_factory=dict, repr=False)

    @classmethod
    def create(
        cls,
        catalog: Catalog,
        *,
        series_capacity: int,
        window: timedelta = timedelta(minutes=5),
        event_buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> "DashboardState":
        """Allocate buffers for every catalog key and derived series."""
        keys = [*catalog.keys(), SERIES_THROUGHPUT, SERIES_ERRORS]
        return cls(
            catalog=catalog,
            series=SeriesStore(series_capacity, keys),
            events=EventBuffer(event_buffer_size),
            window=window,
        )

    # ------------------------------------------------------------------
    # Mutation (dashboard loop only)
    # ------------------------------------------------------------------

    def apply(self, message: Message) -> None:
        """Fold one inbox message into the state."""
        if isinstance(message, ScrapeResult):
            self._apply_scrape(message)
        elif isinstance(message, HealthResult):
            self._apply_health(message)
        elif isinstance(message, StatsResult):
            self._apply_stats(message)
        elif isinstance(message, SubscriptionStarted):
            self.events.clear()
            self.stream = StreamStatus(
                url=message.url,
                state=StreamState.CONNECTING,
                generation=message.generation,
            )
        elif isinstance(message, EventReceived):
            if message.generation == self.stream.generation:
                self.events.add(message.event)
        elif isinstance(message, StreamStateChanged):
            if message.generation == self.stream.generation:
                self.stream.state = message.state
                if message.error is not None:
                    self.stream.last_error = message.error
                elif message.state == StreamState.CONNECTED:
                    self.stream.last_error = None

    def _apply_scrape(self, result: ScrapeResult) -> None:
        status = self.sources[Source.METRICS]
        if result.error is not None or result.snapshot is None:
            self._record_failure(Source.METRICS, result.error, result.attempted_at)
            return
        snapshot = result.snapshot
        status.mark_healthy(snapshot.collected_at)
        self.auth_needed = False
        self.last_snapshot = snapshot
        self.series.record(snapshot)
        self._update_counter_rate(METRIC_TASKS_TOTAL, SERIES_THROUGHPUT, snapshot.collected_at)
        self._update_counter_rate(METRIC_TASKS_FAILED, SERIES_ERRORS, snapshot.collected_at)

    def _apply_health(self, result: HealthResult) -> None:
        if result.health is not None:
            self.last_health = result.health
        if result.error is not None:
            self._record_failure(Source.HEALTH, result.error, result.attempted_at)
            return
        self.sources[Source.HEALTH].mark_healthy(result.attempted_at)

    def _apply_stats(self, result: StatsResult) -> None:
        if result.error is not None or result.stats is None:
            self._record_failure(Source.STATS, result.error, result.attempted_at)
            return
        self.last_stats = result.stats
        self.sources[Source.STATS].mark_healthy(result.attempted_at)

    def _record_failure(
        self,
        source: Source,
        error: BaseException | None,
        at: datetime,
    ) -> None:
        error = error or RuntimeError(f"{source.value} returned no result")
        self.sources[source].mark_failed(error, at)
        if isinstance(error, StatusError) and error.is_auth:
            self.auth_needed = True
        logger.debug(
            "source_failed",
            source=source.value,
            failures=self.sources[source].failure_count,
            error=str(error),
        )

    def _update_counter_rate(self, key: str, derived_key: str, ts: datetime) -> None:
        """Append the counter's rate since the previous scrape to a derived series."""
        buf = self.series.get(key)
        if buf is None:
            return
        latest = buf.latest()
        if latest is None:
            return
        prev = self._last_counters.get(key)
        if prev is not None:
            value = rate([prev, latest])
            if not math.isnan(value):
                self.series.add(derived_key, Sample(timestamp=ts, value=value))
        self._last_counters[key] = latest

    # ------------------------------------------------------------------
    # Read-only accessors for renderers
    # ------------------------------------------------------------------

    def cutoff(self, window: timedelta | None = None, now: datetime | None = None) -> datetime | None:
        """Start of the chart window ending at ``now``."""
        return window_cutoff(
            window if window is not None else self.window,
            now or datetime.now(UTC),
        )

    def values(self, key: str, window: timedelta | None = None) -> list[Sample]:
        """Samples of a key inside the window, oldest first."""
        return self.series.values_since(key, self.cutoff(window))

    def latest(self, key: str) -> float:
        """Most recent value of a key, NaN if nothing was recorded."""
        buf = self.series.get(key)
        sample = buf.latest() if buf is not None else None
        return sample.value if sample is not None else math.nan

    def rate(self, key: str, window: timedelta | None = None) -> float:
        """Per-second increase of a counter over the window."""
        return rate(self.values(key, window))

    def delta(self, key: str, window: timedelta | None = None) -> float:
        """Increase of a counter over the window."""
        return delta(self.values(key, window))

    def error_ratio(self, window: timedelta | None = None) -> float:
        """Share of processed tasks that failed over the window."""
        return ratio(
            self.values(METRIC_TASKS_FAILED, window),
            self.values(METRIC_TASKS_TOTAL, window),
        )

    def recent_events(self) -> list[Event]:
        """Buffered events matching the filter text, oldest first."""
        return [event for event in self.events.items() if self.event_filter.matches(event)]
