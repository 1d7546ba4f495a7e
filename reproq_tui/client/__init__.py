"""HTTP client for the worker, health, stats and events endpoints."""

from reproq_tui.client.http import (
    AUTHORIZATION_HEADER,
    DEFAULT_TIMEOUT,
    HeaderStore,
    ReproqClient,
)

__all__ = [
    "AUTHORIZATION_HEADER",
    "DEFAULT_TIMEOUT",
    "HeaderStore",
    "ReproqClient",
]
