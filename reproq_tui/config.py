"""Dashboard configuration settings.

This module reads the ``REPROQ_TUI_*`` environment variables into a Settings
object, derives endpoint URLs that were not given explicitly and sizes the
time series buffers from the poll interval and the largest chart window.

Durations accept Go-style strings (``500ms``, ``2s``, ``5m``, ``1h30m``) or
bare seconds. List-valued variables are separated by ``;`` because
selectors and header values may contain commas.
"""

import math
import os
import re
from dataclasses import dataclass, field, replace
from datetime import timedelta
from urllib.parse import urlsplit, urlunsplit

from reproq_tui.client import AUTHORIZATION_HEADER
from reproq_tui.errors import ConfigError
from reproq_tui.metrics.catalog import parse_overrides
from reproq_tui.metrics.ring import series_capacity

ENV_PREFIX = "REPROQ_TUI_"

# Chart windows the dashboard can switch between; the largest sizes buffers
WINDOW_OPTIONS = (
    timedelta(minutes=1),
    timedelta(minutes=5),
    timedelta(minutes=15),
)

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: str) -> float | None:
    """Parse a duration into seconds.

    Args:
        value: ``"2s"``, ``"500ms"``, ``"1m30s"`` or a bare number of seconds.

    Returns:
        Seconds, or None if the value is empty or malformed.
    """
    text = value.strip()
    if not text:
        return None
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        return seconds if math.isfinite(seconds) else None
    total = 0.0
    pos = 0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != pos:
            return None
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        return None
    return total


def parse_headers(items: list[str]) -> dict[str, str]:
    """Parse ``Key: Value`` strings; entries without a colon or key are skipped."""
    headers: dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition(":")
        key = key.strip()
        if not sep or not key:
            continue
        headers[key] = value.strip()
    return headers


def _split_list(value: str) -> list[str]:
    return [part.strip() for part in value.split(";") if part.strip()]


def _get_env(name: str) -> str:
    return os.getenv(ENV_PREFIX + name, "").strip()


def _get_bool_env(name: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable.

    Args:
        name: Variable name without the prefix.
        default: Default value if not set.

    Returns:
        Boolean value from environment.
    """
    value = _get_env(name).lower()
    if value in ("true", "1", "yes", "y", "on"):
        return True
    if value in ("false", "0", "no", "n", "off"):
        return False
    return default


def _get_duration_env(name: str, default: float) -> float:
    raw = _get_env(name)
    if not raw:
        return default
    seconds = parse_duration(raw)
    if seconds is None or seconds <= 0:
        raise ConfigError(f"invalid duration for {ENV_PREFIX}{name}: {raw!r}", field=name)
    return seconds


def _join_path(base_path: str, suffix: str) -> str:
    base_path = base_path.rstrip("/")
    if not base_path:
        return suffix
    return base_path + suffix


def _with_path(url: str, path: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def derive_metrics_url(worker_url: str) -> str:
    """``http://host:9100`` -> ``http://host:9100/metrics``."""
    if not worker_url:
        return ""
    return _with_path(worker_url, _join_path(urlsplit(worker_url).path, "/metrics"))


def derive_health_url(metrics_url: str) -> str:
    """``http://host:9100/metrics`` -> ``http://host:9100/healthz``."""
    if not metrics_url:
        return ""
    base_path = urlsplit(metrics_url).path.rstrip("/")
    base_path = base_path.removesuffix("/metrics")
    return _with_path(metrics_url, _join_path(base_path, "/healthz"))


def derive_django_stats_url(django_url: str) -> str:
    """``https://app`` -> ``https://app/reproq/stats/``."""
    if not django_url:
        return ""
    return _with_path(django_url, _join_path(urlsplit(django_url).path, "/reproq/stats/"))


def derive_django_url(stats_url: str) -> str:
    """``https://app/reproq/stats/`` -> ``https://app``."""
    if not stats_url:
        return ""
    base_path = urlsplit(stats_url).path.rstrip("/").removesuffix("/reproq/stats")
    return _with_path(stats_url, base_path)


def _validate_url(name: str, value: str) -> None:
    if not value:
        return
    parts = urlsplit(value)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigError(f"invalid {name}: {value!r}", field=name)


@dataclass
class Settings:
    """Dashboard settings loaded from environment variables.

    Attributes:
        WORKER_URL: Base worker URL; derives the metrics and health URLs.
        WORKER_METRICS_URL: Prometheus exposition endpoint (required).
        WORKER_HEALTH_URL: Worker health endpoint.
        EVENTS_URL: Server-Sent Events endpoint.
        DJANGO_URL: Base Django URL; derives the stats URL.
        DJANGO_STATS_URL: Django stats endpoint.
        INTERVAL: Metrics poll interval in seconds.
        HEALTH_INTERVAL: Health poll interval in seconds.
        STATS_INTERVAL: Stats poll interval in seconds.
        WINDOW: Default chart window in seconds.
        TIMEOUT: Per-request timeout in seconds.
        AUTH_TOKEN: Bearer token sent as the Authorization header.
        HEADERS: Extra request headers.
        METRICS: Canonical metric key to selector overrides.
        INSECURE_SKIP_VERIFY: Skip TLS verification (dev only).
        LOG_LEVEL: Logging level.
        LOG_FILE: Log destination; empty logs to stderr.
    """

    # Endpoints
    WORKER_URL: str = ""
    WORKER_METRICS_URL: str = ""
    WORKER_HEALTH_URL: str = ""
    EVENTS_URL: str = ""
    DJANGO_URL: str = ""
    DJANGO_STATS_URL: str = ""

    # Polling
    INTERVAL: float = 1.0
    HEALTH_INTERVAL: float = 0.5
    STATS_INTERVAL: float = 5.0
    WINDOW: float = 300.0
    TIMEOUT: float = 2.0

    # Requests
    AUTH_TOKEN: str | None = None
    HEADERS: dict[str, str] = field(default_factory=dict)
    METRICS: dict[str, str] = field(default_factory=dict)
    INSECURE_SKIP_VERIFY: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables.

        Returns:
            Settings instance populated from environment.

        Raises:
            ConfigError: If a duration or metric override is malformed.
        """
        return cls(
            WORKER_URL=_get_env("WORKER_URL"),
            WORKER_METRICS_URL=_get_env("WORKER_METRICS_URL"),
            WORKER_HEALTH_URL=_get_env("WORKER_HEALTH_URL"),
            EVENTS_URL=_get_env("EVENTS_URL"),
            DJANGO_URL=_get_env("DJANGO_URL"),
            DJANGO_STATS_URL=_get_env("DJANGO_STATS_URL"),
            INTERVAL=_get_duration_env("INTERVAL", 1.0),
            HEALTH_INTERVAL=_get_duration_env("HEALTH_INTERVAL", 0.5),
            STATS_INTERVAL=_get_duration_env("STATS_INTERVAL", 5.0),
            WINDOW=_get_duration_env("WINDOW", 300.0),
            TIMEOUT=_get_duration_env("TIMEOUT", 2.0),
            AUTH_TOKEN=_get_env("AUTH_TOKEN") or os.getenv("METRICS_AUTH_TOKEN") or None,
            HEADERS=parse_headers(_split_list(_get_env("HEADERS"))),
            METRICS=parse_overrides(_split_list(_get_env("METRICS"))),
            INSECURE_SKIP_VERIFY=_get_bool_env("INSECURE_SKIP_VERIFY"),
            LOG_LEVEL=_get_env("LOG_LEVEL") or "INFO",
            LOG_FILE=_get_env("LOG_FILE") or None,
        )

    def resolve(self) -> "Settings":
        """Fill in derived URLs and validate the result.

        Returns:
            A new Settings with every derivable URL set.

        Raises:
            ConfigError: If no metrics URL can be determined or a URL is
                not an absolute http(s) URL.
        """
        metrics_url = self.WORKER_METRICS_URL or derive_metrics_url(self.WORKER_URL)
        django_url = self.DJANGO_URL or derive_django_url(self.DJANGO_STATS_URL)
        resolved = replace(
            self,
            WORKER_METRICS_URL=metrics_url,
            WORKER_HEALTH_URL=self.WORKER_HEALTH_URL or derive_health_url(metrics_url),
            DJANGO_URL=django_url,
            DJANGO_STATS_URL=self.DJANGO_STATS_URL or derive_django_stats_url(django_url),
            HEADERS=self.request_headers(),
        )
        if not resolved.WORKER_METRICS_URL:
            raise ConfigError(
                "worker metrics URL is required "
                f"({ENV_PREFIX}WORKER_METRICS_URL or {ENV_PREFIX}WORKER_URL)",
                field="WORKER_METRICS_URL",
            )
        for name in (
            "WORKER_URL",
            "WORKER_METRICS_URL",
            "WORKER_HEALTH_URL",
            "EVENTS_URL",
            "DJANGO_URL",
            "DJANGO_STATS_URL",
        ):
            _validate_url(name, getattr(resolved, name))
        return resolved

    def request_headers(self) -> dict[str, str]:
        """Headers for every request, including the bearer token.

        An explicit Authorization header wins over AUTH_TOKEN.
        """
        headers = dict(self.HEADERS)
        token = (self.AUTH_TOKEN or "").strip()
        if not token:
            return headers
        if any(key.lower() == AUTHORIZATION_HEADER.lower() for key in headers):
            return headers
        if not token.lower().startswith("bearer "):
            token = f"Bearer {token}"
        headers[AUTHORIZATION_HEADER] = token
        return headers

    def series_capacity(self) -> int:
        """Ring buffer capacity covering the largest window at INTERVAL."""
        max_window = max((*WINDOW_OPTIONS, timedelta(seconds=self.WINDOW)))
        interval = timedelta(seconds=self.INTERVAL if self.INTERVAL > 0 else 1.0)
        return series_capacity(max_window, interval)
