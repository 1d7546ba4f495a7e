"""Worker event stream: SSE client, record decoding and bounded history."""

from reproq_tui.events.buffer import DEFAULT_BUFFER_SIZE, EventBuffer
from reproq_tui.events.decode import parse_event, parse_timestamp, to_string
from reproq_tui.events.filter import EventFilter, build_events_url, parse_event_filter
from reproq_tui.events.models import Event
from reproq_tui.events.stream import (
    BACKOFF_MAX,
    BACKOFF_MIN,
    EventStreamClient,
    SSEDecoder,
    StreamState,
    default_jitter,
    wait_exponential_jitter,
)

__all__ = [
    "BACKOFF_MAX",
    "BACKOFF_MIN",
    "DEFAULT_BUFFER_SIZE",
    "Event",
    "EventBuffer",
    "EventFilter",
    "EventStreamClient",
    "SSEDecoder",
    "StreamState",
    "build_events_url",
    "default_jitter",
    "parse_event",
    "parse_event_filter",
    "parse_timestamp",
    "to_string",
    "wait_exponential_jitter",
]
