"""Dashboard driver: the single-consumer inbox loop.

Every scrape and poll runs as a one-shot task that posts its result to the
inbox. The loop applies results to DashboardState and only then re-arms the
source's timer, so requests to the same endpoint never overlap.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from reproq_tui.client import ReproqClient
from reproq_tui.config import Settings
from reproq_tui.dashboard.messages import (
    EventReceived,
    HealthResult,
    Message,
    Refresh,
    ScrapeResult,
    Source,
    StatsResult,
    Tick,
)
from reproq_tui.dashboard.state import DashboardState
from reproq_tui.dashboard.subscription import DEFAULT_QUEUE_SIZE, EventSubscription
from reproq_tui.errors import ReproqTuiError, TransportError
from reproq_tui.events.filter import EventFilter, build_events_url, parse_event_filter
from reproq_tui.health import HealthCheckError, fetch_health
from reproq_tui.metrics.catalog import new_catalog
from reproq_tui.metrics.scrape import scrape
from reproq_tui.stats import fetch_stats

logger = structlog.get_logger(__name__)

Listener = Callable[[DashboardState, Message], None]
PollResult = ScrapeResult | HealthResult | StatsResult

_RESULT_SOURCES: dict[type, Source] = {
    ScrapeResult: Source.METRICS,
    HealthResult: Source.HEALTH,
    StatsResult: Source.STATS,
}


class Dashboard:
    """Owns the HTTP client, the state and every background task.

    Example:
        dashboard = Dashboard(Settings.from_env().resolve())
        dashboard.add_listener(render)
        await dashboard.run()

    Args:
        settings: Resolved settings.
        client: Shared HTTP client; created from settings when omitted and
            closed on shutdown only in that case.
        queue_size: Capacity of the event queue feeding the inbox.
        stream_options: Extra EventStreamClient options (backoff, sleep...).
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client: ReproqClient | None = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        stream_options: dict[str, Any] | None = None,
    ) -> None:
        self.settings = settings
        self._owns_client = client is None
        self.client = client or ReproqClient(
            timeout=settings.TIMEOUT,
            headers=settings.request_headers(),
            verify=not settings.INSECURE_SKIP_VERIFY,
        )
        self.state = DashboardState.create(
            new_catalog(settings.METRICS),
            series_capacity=settings.series_capacity(),
            window=timedelta(seconds=settings.WINDOW),
        )
        self.inbox: asyncio.Queue[Message] = asyncio.Queue()
        self.subscription = EventSubscription(
            self.client,
            self.post,
            queue_size=queue_size,
            **{"timeout": settings.TIMEOUT, **(stream_options or {})},
        )
        self.paused = False
        self._closed = False
        self._polls: dict[Source, asyncio.Task[None]] = {}
        self._timers: dict[Source, asyncio.TimerHandle] = {}
        self._listeners: list[Listener] = []
        self._logger = logger.bind(component="dashboard")

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def _url(self, source: Source) -> str:
        if source == Source.METRICS:
            return self.settings.WORKER_METRICS_URL
        if source == Source.HEALTH:
            return self.settings.WORKER_HEALTH_URL
        return self.settings.DJANGO_STATS_URL

    def _interval(self, source: Source) -> float:
        if source == Source.METRICS:
            return self.settings.INTERVAL
        if source == Source.HEALTH:
            return self.settings.HEALTH_INTERVAL
        return self.settings.STATS_INTERVAL

    @property
    def sources(self) -> list[Source]:
        """Sources with a configured URL."""
        return [source for source in Source if self._url(source)]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        """Call ``listener(state, message)`` after every handled message."""
        self._listeners.append(listener)

    def post(self, message: Message) -> None:
        """Deliver a message to the inbox; never blocks."""
        if not self._closed:
            self.inbox.put_nowait(message)

    async def start(self) -> None:
        """Poll every configured source once and open the event stream."""
        self._logger.info(
            "dashboard_started",
            sources=[source.value for source in self.sources],
            events=bool(self.settings.EVENTS_URL),
        )
        for source in self.sources:
            self._start_poll(source)
        if self.settings.EVENTS_URL:
            await self.subscription.subscribe(self.settings.EVENTS_URL)

    async def run(self) -> None:
        """Start and process messages until cancelled, then shut down."""
        await self.start()
        try:
            while True:
                await self.process_next()
        finally:
            await self.shutdown()

    async def process_next(self) -> Message:
        """Wait for one inbox message and handle it."""
        message = await self.inbox.get()
        self.handle(message)
        return message

    async def shutdown(self) -> None:
        """Cancel timers, polls and the event stream; close our client."""
        if self._closed:
            return
        self._closed = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        polls = list(self._polls.values())
        self._polls.clear()
        for task in polls:
            task.cancel()
        for task in polls:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.subscription.close()
        if self._owns_client:
            await self.client.close()
        self._logger.info("dashboard_stopped")

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def refresh(self) -> None:
        """Poll every source now instead of waiting for its timer."""
        self.post(Refresh())

    def pause(self) -> None:
        """Stop scheduling polls; in-flight results are still applied."""
        self.paused = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._logger.info("dashboard_paused")

    def resume(self) -> None:
        """Resume polling with an immediate refresh."""
        if not self.paused:
            return
        self.paused = False
        self._logger.info("dashboard_resumed")
        self.refresh()

    async def subscribe_events(self, url: str) -> int:
        """Switch the event stream to ``url``; returns the new generation."""
        return await self.subscription.subscribe(url)

    async def apply_event_filter(self, text: str) -> EventFilter:
        """Apply a filter string to the event stream.

        Server-side parts resubscribe the stream when they change the URL;
        the free-text part only affects ``DashboardState.recent_events``.
        """
        event_filter = parse_event_filter(text)
        self.state.event_filter = event_filter
        url = build_events_url(self.settings.EVENTS_URL, event_filter)
        if url and url != self.subscription.url:
            await self.subscription.subscribe(url)
        return event_filter

    # ------------------------------------------------------------------
    # Inbox handling
    # ------------------------------------------------------------------

    def handle(self, message: Message) -> None:
        """Apply one message and schedule whatever follows from it."""
        if isinstance(message, Tick):
            if not self.paused:
                self._timers.pop(message.source, None)
                self._start_poll(message.source)
        elif isinstance(message, Refresh):
            for source in self.sources:
                timer = self._timers.pop(source, None)
                if timer is not None:
                    timer.cancel()
                self._start_poll(source)
        else:
            self.state.apply(message)
            if isinstance(message, EventReceived):
                self.subscription.acknowledge(message.generation)
            source = _RESULT_SOURCES.get(type(message))
            if source is not None:
                self._polls.pop(source, None)
                self._schedule(source)
        for listener in self._listeners:
            listener(self.state, message)

    def _schedule(self, source: Source) -> None:
        if self.paused or self._closed or source in self._timers:
            return
        loop = asyncio.get_running_loop()
        self._timers[source] = loop.call_later(
            max(0.0, self._interval(source)),
            self.post,
            Tick(source),
        )

    def _start_poll(self, source: Source) -> None:
        if self._closed or source in self._polls or not self._url(source):
            return
        self._polls[source] = asyncio.create_task(
            self._poll(source),
            name=f"poll-{source.value}",
        )

    async def _poll(self, source: Source) -> None:
        attempted_at = datetime.now(UTC)
        url = self._url(source)
        try:
            result = await self._bounded(self._request(source, url, attempted_at), url)
        except HealthCheckError as e:
            result = HealthResult(health=e.health, error=e, attempted_at=attempted_at)
        except ReproqTuiError as e:
            result = self._failure(source, e, attempted_at)
        except Exception as e:
            self._logger.exception("poll_failed", source=source.value, url=url)
            result = self._failure(source, e, attempted_at)
        self.post(result)

    async def _bounded(self, request: Awaitable[PollResult], url: str) -> PollResult:
        timeout = self.settings.TIMEOUT
        try:
            return await asyncio.wait_for(request, timeout=timeout if timeout > 0 else None)
        except TimeoutError as e:
            raise TransportError(f"request to {url} timed out after {timeout}s", url=url) from e

    async def _request(self, source: Source, url: str, attempted_at: datetime) -> PollResult:
        timeout = self.settings.TIMEOUT
        if source == Source.METRICS:
            snapshot = await scrape(self.client, url, self.state.catalog, timeout=timeout)
            return ScrapeResult(snapshot=snapshot, attempted_at=attempted_at)
        if source == Source.HEALTH:
            health = await fetch_health(self.client, url, timeout=timeout)
            return HealthResult(health=health, attempted_at=attempted_at)
        stats = await fetch_stats(self.client, url, timeout=timeout)
        return StatsResult(stats=stats, attempted_at=attempted_at)

    @staticmethod
    def _failure(source: Source, error: Exception, attempted_at: datetime) -> PollResult:
        if source == Source.METRICS:
            return ScrapeResult(error=error, attempted_at=attempted_at)
        if source == Source.HEALTH:
            return HealthResult(error=error, attempted_at=attempted_at)
        return StatsResult(error=error, attempted_at=attempted_at)
