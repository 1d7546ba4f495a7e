"""Decoding of event stream records into Event objects.

Records are JSON objects with loosely typed fields. Every field is coerced
to a string; numbers are rendered without decimals and anything else that is
not a string becomes empty. The ``ts`` field may be an RFC 3339 string or a
Unix epoch number with fractional seconds.
"""

import json
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from reproq_tui.events.models import Event

# Python keeps microseconds; RFC 3339 nano timestamps carry up to nine digits
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")
_RFC3339_RE = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})")


def _reject_constant(name: str) -> float:
    raise ValueError(f"invalid JSON constant {name}")


def parse_event(payload: str) -> Event | None:
    """Decode one stream record.

    Args:
        payload: The record's data lines joined with newlines.

    Returns:
        The decoded event, or None if the payload is not a strict JSON
        object (NaN and Infinity are rejected).
    """
    try:
        raw = json.loads(payload, parse_constant=_reject_constant)
    except ValueError:
        return None
    if not isinstance(raw, dict):
        return None

    metadata: dict[str, str] = {}
    meta = raw.get("metadata")
    if isinstance(meta, Mapping):
        metadata = {str(key): to_string(value) for key, value in meta.items()}

    return Event(
        timestamp=parse_timestamp(raw.get("ts")) or datetime.now(UTC),
        level=to_string(raw.get("level")),
        type=to_string(raw.get("type")),
        message=to_string(raw.get("msg")),
        queue=to_string(raw.get("queue")),
        task_id=to_string(raw.get("task_id")),
        worker_id=to_string(raw.get("worker_id")),
        metadata=metadata,
    )


def to_string(value: Any) -> str:
    """Coerce a JSON value to a string.

    Strings pass through, numbers are formatted with no decimal places and
    everything else (null, booleans, arrays, objects) becomes "".
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return f"{value:.0f}"
    return ""


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 string or epoch number into an aware datetime.

    Strings must use the extended format with a ``T`` separator and a ``Z``
    or numeric offset, e.g. ``2024-01-01T00:00:00.123456789Z``.

    Returns:
        The timestamp, or None if the value is missing or unparsable.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        if not _RFC3339_RE.fullmatch(value):
            return None
        text = _FRACTION_RE.sub(r"\1", value)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return None
        return parsed
    return None
