"""Event stream subscription owned by the dashboard.

Wraps an EventStreamClient task plus a pump that forwards decoded events to
the dashboard inbox one at a time: the next event is posted only after the
dashboard acknowledges the previous one, so a slow loop fills the bounded
stream queue and holds back reading from the connection. Switching URLs
tears both down and bumps a generation number so events still in flight from
the old stream are ignored.
"""

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any

import structlog

from reproq_tui.client import ReproqClient
from reproq_tui.dashboard.messages import (
    EventReceived,
    Message,
    StreamStateChanged,
    SubscriptionStarted,
)
from reproq_tui.events.models import Event
from reproq_tui.events.stream import EventStreamClient, StreamState

logger = structlog.get_logger(__name__)

DEFAULT_QUEUE_SIZE = 50

PostFunc = Callable[[Message], None]


class EventSubscription:
    """At most one live event stream at a time.

    Args:
        client: Shared HTTP client.
        post: Delivers a message to the dashboard inbox without blocking.
        queue_size: Capacity of the queue between stream and pump; a full
            queue pauses reading from the connection. At most one further
            event per subscription waits in the inbox.
        **stream_options: Passed through to EventStreamClient.
    """

    def __init__(
        self,
        client: ReproqClient,
        post: PostFunc,
        *,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        **stream_options: Any,
    ) -> None:
        self._client = client
        self._post = post
        self._queue_size = max(1, queue_size)
        self._stream_options = stream_options
        self._tasks: list[asyncio.Task[None]] = []
        self._delivered: asyncio.Event | None = None
        self.generation = 0
        self.url = ""
        self._logger = logger.bind(component="event_subscription")

    @property
    def active(self) -> bool:
        """Whether a stream task is currently running."""
        return any(not task.done() for task in self._tasks)

    async def subscribe(self, url: str) -> int:
        """Replace the current stream with one reading from ``url``.

        An empty URL only stops the current stream.

        Returns:
            The generation number of the new subscription.
        """
        await self.close()
        self.generation += 1
        self.url = url
        generation = self.generation
        self._post(SubscriptionStarted(url=url, generation=generation))
        if not url:
            self._logger.info("event_subscription_cleared", generation=generation)
            return generation

        def on_state(state: StreamState, error: BaseException | None) -> None:
            self._post(StreamStateChanged(state=state, generation=generation, error=error))

        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._queue_size)
        delivered = asyncio.Event()
        self._delivered = delivered
        stream = EventStreamClient(self._client, on_state=on_state, **self._stream_options)
        self._tasks = [
            asyncio.create_task(stream.listen(url, queue), name=f"event-stream-{generation}"),
            asyncio.create_task(
                self._pump(queue, generation, delivered),
                name=f"event-pump-{generation}",
            ),
        ]
        self._logger.info("event_subscription_started", url=url, generation=generation)
        return generation

    async def _pump(
        self,
        queue: asyncio.Queue[Event],
        generation: int,
        delivered: asyncio.Event,
    ) -> None:
        while True:
            event = await queue.get()
            delivered.clear()
            self._post(EventReceived(event=event, generation=generation))
            await delivered.wait()

    def acknowledge(self, generation: int) -> None:
        """Mark the posted event of ``generation`` as applied.

        Releases the pump to post the next event. Acknowledgements for an
        older generation are ignored.
        """
        if generation == self.generation and self._delivered is not None:
            self._delivered.set()

    async def close(self) -> None:
        """Cancel the stream and pump tasks and wait for them to finish."""
        tasks, self._tasks = self._tasks, []
        self._delivered = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
