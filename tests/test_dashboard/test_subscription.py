"""Tests for EventSubscription."""

import asyncio
from collections.abc import Callable

import pytest

from reproq_tui.client import ReproqClient
from reproq_tui.dashboard.messages import (
    EventReceived,
    Message,
    StreamStateChanged,
    SubscriptionStarted,
)
from reproq_tui.dashboard.subscription import EventSubscription
from reproq_tui.events.models import Event
from reproq_tui.events.stream import StreamState


async def wait_until(predicate: Callable[[], bool], attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


class AcknowledgingInbox:
    """Collects posted messages and acknowledges events like the dashboard loop."""

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self.subscription: EventSubscription | None = None

    def __call__(self, message: Message) -> None:
        self.messages.append(message)
        if isinstance(message, EventReceived) and self.subscription is not None:
            self.subscription.acknowledge(message.generation)


def attach(inbox: AcknowledgingInbox, **options: object) -> EventSubscription:
    subscription = EventSubscription(ReproqClient(), inbox, **options)
    inbox.subscription = subscription
    return subscription


class StreamingConnect:
    """Connect replacement that publishes a few events, then idles."""

    def __init__(self) -> None:
        self.urls: list[str] = []

    async def __call__(self, url: str, out: asyncio.Queue[Event]) -> None:
        self.urls.append(url)
        for i in range(2):
            await out.put(Event(message=f"{url}#{i}"))
        await asyncio.Event().wait()


class TestEventSubscription:
    """Tests for EventSubscription."""

    @pytest.mark.asyncio
    async def test_forwards_events(self) -> None:
        """Events should be posted tagged with the subscription generation."""
        inbox = AcknowledgingInbox()
        posted = inbox.messages
        connect = StreamingConnect()
        subscription = attach(inbox, connect=connect)

        generation = await subscription.subscribe("http://w/events")
        await wait_until(lambda: sum(isinstance(m, EventReceived) for m in posted) == 2)
        await subscription.close()

        assert generation == 1
        assert posted[0] == SubscriptionStarted(url="http://w/events", generation=1)
        received = [m for m in posted if isinstance(m, EventReceived)]
        assert [m.event.message for m in received] == ["http://w/events#0", "http://w/events#1"]
        assert all(m.generation == 1 for m in received)
        assert not subscription.active

    @pytest.mark.asyncio
    async def test_resubscribe_replaces_stream(self) -> None:
        """A new URL should cancel the old stream and bump the generation."""
        inbox = AcknowledgingInbox()
        posted = inbox.messages
        connect = StreamingConnect()
        subscription = attach(inbox, connect=connect)

        await subscription.subscribe("http://w/events")
        await wait_until(lambda: len(connect.urls) == 1)
        generation = await subscription.subscribe("http://w/events?queue=a")
        await wait_until(lambda: len(connect.urls) == 2)

        assert generation == 2
        assert subscription.url == "http://w/events?queue=a"
        stopped = [
            m
            for m in posted
            if isinstance(m, StreamStateChanged) and m.state == StreamState.STOPPED
        ]
        assert [m.generation for m in stopped] == [1]
        assert subscription.active

        await subscription.close()
        assert not subscription.active

    @pytest.mark.asyncio
    async def test_empty_url_only_stops(self) -> None:
        """Subscribing to an empty URL should stop streaming."""
        posted: list[Message] = []
        subscription = EventSubscription(
            ReproqClient(),
            posted.append,
            connect=StreamingConnect(),
        )

        await subscription.subscribe("http://w/events")
        await subscription.subscribe("")

        assert not subscription.active
        assert posted[-1] == SubscriptionStarted(url="", generation=2)

    @pytest.mark.asyncio
    async def test_unacknowledged_event_holds_back_stream(self) -> None:
        """Only one event may wait in the inbox; the rest stay in the bounded queue."""
        published: list[int] = []
        posted: list[Message] = []

        async def connect(url: str, out: asyncio.Queue[Event]) -> None:
            for i in range(5000):
                await out.put(Event(message=str(i)))
                published.append(i)
            await asyncio.Event().wait()

        subscription = EventSubscription(
            ReproqClient(),
            posted.append,
            queue_size=50,
            connect=connect,
        )
        await subscription.subscribe("http://w/events")
        await wait_until(lambda: len(published) == 51)
        for _ in range(20):
            await asyncio.sleep(0)

        received = [m for m in posted if isinstance(m, EventReceived)]
        assert len(published) == 51
        assert [m.event.message for m in received] == ["0"]

        # A stale generation does not release the pump
        subscription.acknowledge(0)
        for _ in range(20):
            await asyncio.sleep(0)
        assert sum(isinstance(m, EventReceived) for m in posted) == 1

        subscription.acknowledge(1)
        await wait_until(lambda: sum(isinstance(m, EventReceived) for m in posted) == 2)
        await wait_until(lambda: len(published) == 52)
        await subscription.close()

        received = [m.event.message for m in posted if isinstance(m, EventReceived)]
        assert received == ["0", "1"]
        assert len(published) == 52

    @pytest.mark.asyncio
    async def test_acknowledged_events_arrive_in_order(self) -> None:
        """A full queue should hold back the stream without dropping events."""
        published: list[int] = []
        inbox = AcknowledgingInbox()

        async def connect(url: str, out: asyncio.Queue[Event]) -> None:
            for i in range(10):
                await out.put(Event(message=str(i)))
                published.append(i)
            await asyncio.Event().wait()

        subscription = attach(inbox, queue_size=2, connect=connect)
        await subscription.subscribe("http://w/events")
        await wait_until(lambda: sum(isinstance(m, EventReceived) for m in inbox.messages) == 10)
        await subscription.close()

        received = [m.event.message for m in inbox.messages if isinstance(m, EventReceived)]
        assert received == [str(i) for i in range(10)]
        assert published == list(range(10))
