"""Resilient Server-Sent Events client for the worker event stream.

The client keeps one long-lived streaming GET open and decodes every
``data:`` record into an Event. When connecting fails it backs off
exponentially with jitter and tries again, forever, until its task is
cancelled.

Backoff States:
- CONNECTING: Opening the stream
- CONNECTED: Stream open, records flowing
- BACKING_OFF: Waiting before the next connect attempt
- STOPPED: Task cancelled, no further attempts

Backoff starts at ``min_backoff`` and doubles after every failed attempt up
to ``max_backoff``; each wait adds a uniform jitter of up to half the
current backoff. Once a connection has been established, the next failure
cycle starts again from ``min_backoff``.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from enum import Enum

import httpx
import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_never
from tenacity.wait import wait_base, wait_exponential

from reproq_tui.client import ReproqClient
from reproq_tui.errors import StatusError
from reproq_tui.events.decode import parse_event
from reproq_tui.events.models import Event

logger = structlog.get_logger(__name__)

BACKOFF_MIN = 1.0
BACKOFF_MAX = 30.0

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"

JitterFunc = Callable[[float], float]
SleepFunc = Callable[[float], Awaitable[None]]
ConnectFunc = Callable[[str, asyncio.Queue[Event]], Awaitable[None]]
StateListener = Callable[["StreamState", BaseException | None], None]


class StreamState(Enum):
    """Event stream connection states."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    BACKING_OFF = "backing_off"
    STOPPED = "stopped"


def default_jitter(base: float) -> float:
    """Uniform jitter in ``[0, base / 2]``."""
    if base <= 0:
        return 0.0
    return random.uniform(0.0, base / 2)


class wait_exponential_jitter(wait_base):
    """Doubling backoff capped at a maximum, plus proportional jitter.

    The wait for attempt ``n`` is ``b + jitter(b)`` where
    ``b = min(min_backoff * 2 ** (n - 1), max_backoff)``.
    """

    def __init__(
        self,
        min_backoff: float,
        max_backoff: float,
        jitter: JitterFunc = default_jitter,
    ) -> None:
        self.min_backoff = min_backoff
        self._exponential = wait_exponential(
            multiplier=min_backoff,
            min=min_backoff,
            max=max_backoff,
        )
        self._jitter = jitter

    def backoff(self, retry_state: RetryCallState) -> float:
        """Backoff before jitter for the state's attempt number."""
        return self._exponential(retry_state)

    def __call__(self, retry_state: RetryCallState) -> float:
        base = self.backoff(retry_state)
        return base + self._jitter(base)

    def initial(self) -> float:
        """Wait used right after an established connection drops."""
        return self.min_backoff + self._jitter(self.min_backoff)


class SSEDecoder:
    """Line-oriented Server-Sent Events framing.

    ``data:`` lines accumulate, lines starting with ``:`` are comments
    (keepalives), a blank line completes one record and every other field
    is ignored.
    """

    def __init__(self) -> None:
        self._data: list[str] = []

    def feed(self, line: str) -> str | None:
        """Consume one line (without its terminator).

        Returns:
            The completed record payload when ``line`` ends a record.
        """
        line = line.rstrip("\r\n")
        if not line:
            return self.flush()
        if line.startswith(":"):
            return None
        if line.startswith("data:"):
            self._data.append(line[len("data:") :].strip())
        return None

    def flush(self) -> str | None:
        """Return pending data lines as one record, if any, and reset."""
        if not self._data:
            return None
        payload = "\n".join(self._data)
        self._data = []
        return payload


class EventStreamClient:
    """Subscribes to the worker event stream and publishes decoded events.

    Example:
        stream = EventStreamClient(client)
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=50)
        task = asyncio.create_task(stream.listen(url, queue))
        ...
        task.cancel()
    """

    def __init__(
        self,
        client: ReproqClient,
        *,
        min_backoff: float = BACKOFF_MIN,
        max_backoff: float = BACKOFF_MAX,
        timeout: float | None = None,
        jitter: JitterFunc | None = None,
        sleep: SleepFunc | None = None,
        connect: ConnectFunc | None = None,
        on_state: StateListener | None = None,
    ) -> None:
        """Initialize the stream client.

        Args:
            client: Shared HTTP client (supplies auth headers).
            min_backoff: First backoff in seconds; values <= 0 use BACKOFF_MIN.
            max_backoff: Backoff cap in seconds; values <= 0 use BACKOFF_MAX.
            timeout: Connect timeout in seconds (defaults to the client's).
            jitter: Jitter function of the current backoff.
            sleep: Awaitable sleep used between attempts.
            connect: Replacement for the streaming session (used by tests).
            on_state: Called on every state transition with the error that
                caused it, if any.
        """
        self._client = client
        self.min_backoff = min_backoff if min_backoff > 0 else BACKOFF_MIN
        self.max_backoff = max_backoff if max_backoff > 0 else BACKOFF_MAX
        self._timeout = timeout
        self._wait = wait_exponential_jitter(
            self.min_backoff,
            self.max_backoff,
            jitter or default_jitter,
        )
        self._sleep: SleepFunc = sleep or asyncio.sleep
        self._connect: ConnectFunc = connect or self._stream_events
        self._on_state = on_state
        self._state = StreamState.CONNECTING
        self._logger = logger.bind(component="event_stream")

    @property
    def state(self) -> StreamState:
        """Current connection state."""
        return self._state

    def _set_state(self, state: StreamState, error: BaseException | None = None) -> None:
        if state == self._state and error is None:
            return
        old_state = self._state
        self._state = state
        self._logger.debug(
            "event_stream_state_changed",
            from_state=old_state.value,
            to_state=state.value,
            error=str(error) if error else None,
        )
        if self._on_state is not None:
            self._on_state(state, error)

    async def listen(self, url: str, out: asyncio.Queue[Event]) -> None:
        """Stream events from ``url`` into ``out`` until cancelled.

        Never returns normally. Cancelling the task aborts the open
        connection or pending backoff immediately; the CancelledError is
        re-raised after the state moves to STOPPED.

        Args:
            url: Event stream URL.
            out: Destination queue; a full queue applies backpressure.
        """
        self._logger.info("event_stream_started", url=url)
        try:
            while True:
                retrying = AsyncRetrying(
                    wait=self._wait,
                    retry=retry_if_exception_type(Exception),
                    stop=stop_never,
                    sleep=self._sleep,
                    before_sleep=self._before_sleep,
                )
                self._set_state(StreamState.CONNECTING)
                await retrying(self._connect, url, out)

                # The connection was established and has ended; start the
                # next cycle from the minimum backoff.
                delay = self._wait.initial()
                self._set_state(StreamState.BACKING_OFF)
                self._logger.info(
                    "event_stream_reconnecting",
                    url=url,
                    delay_seconds=round(delay, 3),
                    reason="stream_closed",
                )
                await self._sleep(delay)
        except asyncio.CancelledError:
            self._set_state(StreamState.STOPPED)
            self._logger.debug("event_stream_cancelled", url=url)
            raise

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        self._set_state(StreamState.BACKING_OFF, error)
        self._logger.warning(
            "event_stream_reconnecting",
            attempt=retry_state.attempt_number,
            delay_seconds=round(delay, 3),
            error=str(error) if error else None,
            error_type=type(error).__name__ if error else None,
        )

    async def _stream_events(self, url: str, out: asyncio.Queue[Event]) -> None:
        """Run one streaming session.

        Raises if the stream cannot be opened. Once the stream is open, the
        session returns normally when the server closes it or the
        connection drops.

        Raises:
            TransportError: If the connection could not be established.
            StatusError: If the server answered with a non-2xx status.
        """
        async with self._client.stream(
            url,
            headers={"Accept": EVENT_STREAM_CONTENT_TYPE},
            timeout=self._timeout,
        ) as response:
            if not response.is_success:
                raise StatusError(response.status_code, url=url)
            self._set_state(StreamState.CONNECTED)

            decoder = SSEDecoder()
            try:
                async for line in response.aiter_lines():
                    payload = decoder.feed(line)
                    if payload is not None:
                        await self._publish(payload, out)
            except httpx.TransportError as e:
                self._logger.info(
                    "event_stream_dropped",
                    url=url,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            payload = decoder.flush()
            if payload is not None:
                await self._publish(payload, out)

    async def _publish(self, payload: str, out: asyncio.Queue[Event]) -> None:
        event = parse_event(payload)
        if event is None:
            self._logger.debug("event_record_dropped", size=len(payload))
            return
        await out.put(event)
