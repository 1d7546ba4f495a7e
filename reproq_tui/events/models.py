"""Structured worker events decoded from the event stream."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class Event:
    """A single worker event.

    Attributes:
        timestamp: When the event happened (server time if provided).
        level: Severity, e.g. "info" or "error".
        type: Event kind, e.g. "task" or "worker".
        message: Human-readable message.
        queue: Queue name, empty if not applicable.
        task_id: Task identifier, empty if not applicable.
        worker_id: Worker identifier, empty if not applicable.
        metadata: Extra string fields (read-only).
    """

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    level: str = ""
    type: str = ""
    message: str = ""
    queue: str = ""
    task_id: str = ""
    worker_id: str = ""
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def to_dict(self) -> dict[str, Any]:
        """Convert event to its wire representation.

        Returns:
            Dictionary using the stream's field names; empty optional
            fields are omitted.
        """
        result: dict[str, Any] = {
            "ts": self.timestamp.isoformat(),
            "level": self.level,
            "type": self.type,
            "msg": self.message,
        }
        for key, value in (
            ("queue", self.queue),
            ("task_id", self.task_id),
            ("worker_id", self.worker_id),
        ):
            if value:
                result[key] = value
        if self.metadata:
            result["metadata"] = dict(self.metadata)
        return result
