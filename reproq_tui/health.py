"""Worker health endpoint polling.

The health endpoint may answer with plain text or a JSON document such as
``{"status": "ok", "version": "1.4.0", "commit": "abc123"}``. The HTTP status
decides health by default; a JSON ``status`` of "ok" or "healthy" marks the
worker healthy regardless.
"""

import json
import time
from datetime import UTC, datetime
from http import HTTPStatus

import structlog
from pydantic import BaseModel, Field, ValidationError

from reproq_tui.client import ReproqClient
from reproq_tui.errors import StatusError

logger = structlog.get_logger(__name__)

HEALTHY_STATUSES = frozenset({"ok", "healthy"})


class HealthPayload(BaseModel):
    """JSON body returned by the health endpoint."""

    status: str = ""
    version: str = ""
    build: str = ""
    commit: str = ""
    message: str = ""


class HealthStatus(BaseModel):
    """Result of one health poll.

    Attributes:
        healthy: Whether the worker reports itself healthy.
        status: Lower-cased status text.
        version: Worker version, if reported.
        build: Build identifier, if reported.
        commit: Source commit, if reported.
        message: Free-form detail, if reported.
        checked_at: Local time the poll finished.
        latency: Poll duration in seconds.
    """

    healthy: bool
    status: str
    version: str = ""
    build: str = ""
    commit: str = ""
    message: str = ""
    checked_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    latency: float = 0.0


class HealthCheckError(StatusError):
    """Health endpoint returned an error status.

    Attributes:
        health: Status parsed from the error response.
    """

    def __init__(self, code: int, *, url: str, health: HealthStatus) -> None:
        super().__init__(code, url=url, details={"status": health.status})
        self.health = health


def _status_text(code: int) -> str:
    try:
        return HTTPStatus(code).phrase.lower()
    except ValueError:
        return ""


async def fetch_health(
    client: ReproqClient,
    url: str,
    *,
    timeout: float | None = None,
) -> HealthStatus:
    """Poll the health endpoint once.

    Args:
        client: Shared HTTP client.
        url: Health endpoint URL.
        timeout: Request timeout in seconds (defaults to the client's).

    Returns:
        The parsed health status.

    Raises:
        TransportError: If the endpoint could not be reached.
        HealthCheckError: If the endpoint answered with status >= 400; the
            parsed status is attached to the exception.
    """
    start = time.monotonic()
    response = await client.get(url, timeout=timeout)
    body = response.content

    health = HealthStatus(
        healthy=response.status_code == HTTPStatus.OK,
        status=_status_text(response.status_code),
        checked_at=datetime.now(UTC),
        latency=time.monotonic() - start,
    )

    content_type = response.headers.get("content-type", "")
    if body and ("application/json" in content_type or body.lstrip().startswith(b"{")):
        try:
            payload = HealthPayload.model_validate(json.loads(body))
        except (ValueError, ValidationError) as e:
            logger.debug("health_payload_ignored", url=url, error=str(e))
        else:
            status = payload.status.lower()
            health = health.model_copy(
                update={
                    "status": status,
                    "version": payload.version,
                    "build": payload.build,
                    "commit": payload.commit,
                    "message": payload.message,
                    "healthy": health.healthy or status in HEALTHY_STATUSES,
                }
            )

    if response.status_code >= 400:
        raise HealthCheckError(response.status_code, url=url, health=health)
    return health
