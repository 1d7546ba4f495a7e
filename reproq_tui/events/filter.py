"""Event stream filters.

A filter string such as ``"queue:default worker=w1 error"`` is split into
server-side filters, sent as query parameters on the stream URL, and a
free-text remainder matched locally against buffered events.
"""

from dataclasses import dataclass

import httpx

from reproq_tui.events.models import Event

# Filter key aliases -> query parameter names
_SERVER_KEYS = {
    "queue": "queue",
    "worker": "worker_id",
    "worker_id": "worker_id",
    "task": "task_id",
    "task_id": "task_id",
}
_QUERY_PARAMS = ("queue", "worker_id", "task_id")


@dataclass(frozen=True)
class EventFilter:
    """Parsed event filter.

    Attributes:
        queue: Server-side queue filter.
        worker_id: Server-side worker filter.
        task_id: Server-side task filter.
        text: Case-insensitive free text matched locally.
    """

    queue: str = ""
    worker_id: str = ""
    task_id: str = ""
    text: str = ""

    def matches(self, event: Event) -> bool:
        """Whether an event contains the free-text part of the filter."""
        needle = self.text.strip().lower()
        if not needle:
            return True
        meta = " ".join(f"{key}:{event.metadata[key]}" for key in sorted(event.metadata))
        haystack = " ".join(
            (
                event.message,
                event.type,
                event.level,
                event.queue,
                event.task_id,
                event.worker_id,
                meta,
            )
        ).lower()
        return needle in haystack


def _split_token(token: str) -> tuple[str, str] | None:
    positions = [pos for pos in (token.find(":"), token.find("=")) if pos >= 0]
    if not positions:
        return None
    sep = min(positions)
    if sep == 0 or sep >= len(token) - 1:
        return None
    key = token[:sep].strip().lower()
    value = token[sep + 1 :].strip()
    if not key or not value:
        return None
    return key, value


def parse_event_filter(text: str) -> EventFilter:
    """Parse a whitespace-separated filter string.

    ``key:value`` or ``key=value`` tokens with a known key (queue, worker,
    worker_id, task, task_id) become server-side filters; the last one wins.
    Every other token is kept, in order, as local free text.
    """
    server: dict[str, str] = {}
    local: list[str] = []
    for token in text.split():
        pair = _split_token(token)
        param = _SERVER_KEYS.get(pair[0]) if pair else None
        if pair is None or param is None:
            local.append(token)
            continue
        server[param] = pair[1]
    return EventFilter(text=" ".join(local), **server)


def build_events_url(base: str, event_filter: EventFilter) -> str:
    """Apply a filter's server-side parts to the stream URL.

    Existing queue/worker_id/task_id parameters are replaced; other query
    parameters are preserved.

    Returns:
        The filtered URL, ``""`` for an empty base, or ``base`` unchanged if
        it cannot be parsed.
    """
    if not base:
        return ""
    try:
        url = httpx.URL(base)
    except httpx.InvalidURL:
        return base
    for param in _QUERY_PARAMS:
        url = url.copy_remove_param(param)
    for param in _QUERY_PARAMS:
        value = getattr(event_filter, param)
        if value:
            url = url.copy_set_param(param, value)
    return str(url)
