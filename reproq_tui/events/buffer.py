"""Bounded history of recent events."""

from collections import deque

from reproq_tui.events.models import Event

DEFAULT_BUFFER_SIZE = 200


class EventBuffer:
    """Fixed-size FIFO of events that drops the oldest entry when full.

    Args:
        size: Maximum number of events kept; values below 1 become 1.
    """

    def __init__(self, size: int = DEFAULT_BUFFER_SIZE) -> None:
        self._items: deque[Event] = deque(maxlen=max(1, size))

    @property
    def size(self) -> int:
        """Maximum number of events kept."""
        return self._items.maxlen or 1

    def __len__(self) -> int:
        return len(self._items)

    def add(self, event: Event) -> None:
        """Append an event, evicting the oldest one when full."""
        self._items.append(event)

    def items(self) -> list[Event]:
        """Return the buffered events, oldest first, as a new list."""
        return list(self._items)

    def clear(self) -> None:
        """Drop every event; the size limit is unchanged."""
        self._items.clear()
