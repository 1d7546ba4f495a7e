"""Dashboard driver: inbox messages, owned state and the event subscription.

This module contains:
- Immutable messages posted by scrape, poll and stream tasks
- DashboardState, mutated only by the inbox loop
- EventSubscription, the generation-tagged event stream owner
- Dashboard, the single-consumer loop that schedules every poll
"""

from reproq_tui.dashboard.dashboard import Dashboard, Listener
from reproq_tui.dashboard.messages import (
    EventReceived,
    HealthResult,
    Message,
    Refresh,
    ScrapeResult,
    Source,
    StatsResult,
    StreamStateChanged,
    SubscriptionStarted,
    Tick,
)
from reproq_tui.dashboard.state import (
    SERIES_ERRORS,
    SERIES_THROUGHPUT,
    UNHEALTHY_AFTER_FAILURES,
    ConnectionHealth,
    DashboardState,
    SourceStatus,
    StreamStatus,
)
from reproq_tui.dashboard.subscription import DEFAULT_QUEUE_SIZE, EventSubscription

__all__ = [
    # Driver
    "Dashboard",
    "Listener",
    # Messages
    "EventReceived",
    "HealthResult",
    "Message",
    "Refresh",
    "ScrapeResult",
    "Source",
    "StatsResult",
    "StreamStateChanged",
    "SubscriptionStarted",
    "Tick",
    # State
    "SERIES_ERRORS",
    "SERIES_THROUGHPUT",
    "UNHEALTHY_AFTER_FAILURES",
    "ConnectionHealth",
    "DashboardState",
    "SourceStatus",
    "StreamStatus",
    # Subscription
    "DEFAULT_QUEUE_SIZE",
    "EventSubscription",
]
