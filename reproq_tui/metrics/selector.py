"""Metric selectors: a metric family name plus a label filter.

Selectors are written the way they appear in exposition text, for example
``reproq_tasks_processed_total{status="failure",queue="default"}``. Parsing
is lenient and never raises; malformed input degrades to fewer labels or to
the empty selector, which always resolves to "not available".
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True)
class Selector:
    """A (metric name, label filter) pair.

    Attributes:
        name: Metric family name; empty means the selector never matches.
        labels: Labels every matched series must carry with equal values.
    """

    name: str = ""
    labels: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))

    @property
    def is_empty(self) -> bool:
        return not self.name

    def matches(self, labels: Mapping[str, str]) -> bool:
        """Check if a series label set is a superset of this selector's labels."""
        return all(labels.get(key) == value for key, value in self.labels.items())

    def __str__(self) -> str:
        if not self.labels:
            return self.name
        pairs = ",".join(f'{key}="{value}"' for key, value in sorted(self.labels.items()))
        return f"{self.name}{{{pairs}}}"


def parse_selector(raw: str) -> Selector:
    """Parse a ``name{k="v",...}`` string into a Selector.

    Args:
        raw: Selector text. Whitespace around it is ignored.

    Returns:
        The parsed selector. Pairs with an empty key or value are dropped.
    """
    trimmed = raw.strip()
    if not trimmed:
        return Selector()

    open_idx = trimmed.find("{")
    if open_idx == -1:
        return Selector(name=trimmed)

    close_idx = trimmed.rfind("}")
    if close_idx == -1 or close_idx < open_idx:
        close_idx = len(trimmed)

    name = trimmed[:open_idx].strip()
    content = trimmed[open_idx + 1 : close_idx].strip()
    if not content:
        return Selector(name=name)

    labels: dict[str, str] = {}
    for part in _split_label_pairs(content):
        pair = _parse_label_pair(part)
        if pair is None:
            continue
        key, value = pair
        labels[key] = value
    return Selector(name=name, labels=labels)


def _split_label_pairs(raw: str) -> list[str]:
    """Split on commas that are not inside double quotes."""
    parts: list[str] = []
    buf: list[str] = []
    in_quotes = False
    escape = False
    for char in raw:
        if escape:
            buf.append(char)
            escape = False
        elif char == "\\":
            buf.append(char)
            escape = True
        elif char == '"':
            buf.append(char)
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            parts.append("".join(buf))
            buf = []
        else:
            buf.append(char)
    if buf:
        parts.append("".join(buf))
    return parts


def _parse_label_pair(raw: str) -> tuple[str, str] | None:
    part = raw.strip()
    if not part or "=" not in part:
        return None
    key, value = (segment.strip() for segment in part.split("=", 1))
    if not key or not value:
        return None
    if value.startswith('"'):
        value = _unquote(value)
    return key, value


def _unquote(value: str) -> str:
    """Unquote a double-quoted label value using JSON string escapes.

    Falls back to stripping the surrounding quotes when the literal is
    malformed (unterminated, stray quotes, bad escapes).
    """
    try:
        unquoted = json.loads(value)
    except ValueError:
        return value.strip('"')
    if not isinstance(unquoted, str):
        return value.strip('"')
    return unquoted
