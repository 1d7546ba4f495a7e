"""Messages delivered to the dashboard inbox.

Every concurrent task (scrape, poll, event stream) reports back by putting
one immutable message into the inbox. Only the dashboard loop consumes the
inbox, so state is never mutated concurrently.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from reproq_tui.events.models import Event
from reproq_tui.events.stream import StreamState
from reproq_tui.health import HealthStatus
from reproq_tui.metrics.models import MetricSnapshot
from reproq_tui.stats import FleetStats


class Source(Enum):
    """Polled endpoints."""

    METRICS = "metrics"
    HEALTH = "health"
    STATS = "stats"


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class ScrapeResult:
    """Outcome of one metrics scrape; exactly one of snapshot/error is set."""

    snapshot: MetricSnapshot | None = None
    error: Exception | None = None
    attempted_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class HealthResult:
    """Outcome of one health poll.

    ``health`` may be set together with ``error`` when the endpoint returned
    an error status with a readable body.
    """

    health: HealthStatus | None = None
    error: Exception | None = None
    attempted_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class StatsResult:
    """Outcome of one stats poll; exactly one of stats/error is set."""

    stats: FleetStats | None = None
    error: Exception | None = None
    attempted_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class Tick:
    """Timer fired for a source; time to poll it again."""

    source: Source


@dataclass(frozen=True)
class Refresh:
    """Operator asked for an immediate refresh of every source."""


@dataclass(frozen=True)
class SubscriptionStarted:
    """The event stream switched to a new URL; older events are stale."""

    url: str
    generation: int


@dataclass(frozen=True)
class EventReceived:
    """An event decoded by the subscription of the given generation."""

    event: Event
    generation: int


@dataclass(frozen=True)
class StreamStateChanged:
    """The event stream connection changed state."""

    state: StreamState
    generation: int
    error: BaseException | None = None


Message = (
    ScrapeResult
    | HealthResult
    | StatsResult
    | Tick
    | Refresh
    | SubscriptionStarted
    | EventReceived
    | StreamStateChanged
)
