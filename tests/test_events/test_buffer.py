"""Tests for the event buffer."""

from reproq_tui.events.buffer import EventBuffer
from reproq_tui.events.models import Event


def event(message: str) -> Event:
    return Event(message=message)


class TestEventBuffer:
    """Tests for EventBuffer."""

    def test_keeps_most_recent(self) -> None:
        """Overflow should drop the oldest events."""
        buf = EventBuffer(2)
        for message in ("a", "b", "c"):
            buf.add(event(message))

        assert [e.message for e in buf.items()] == ["b", "c"]
        assert len(buf) == 2

    def test_items_is_a_copy(self) -> None:
        """Mutating the returned list should not affect the buffer."""
        buf = EventBuffer(2)
        buf.add(event("a"))
        items = buf.items()
        items.append(event("x"))
        items.clear()

        assert [e.message for e in buf.items()] == ["a"]

    def test_size_floor(self) -> None:
        """Sizes below one should become one."""
        buf = EventBuffer(0)
        assert buf.size == 1
        buf.add(event("a"))
        buf.add(event("b"))
        assert [e.message for e in buf.items()] == ["b"]

    def test_clear(self) -> None:
        """clear should drop every event but keep the size."""
        buf = EventBuffer(3)
        buf.add(event("a"))
        buf.clear()
        assert buf.items() == []
        assert buf.size == 3
