"""Django stats endpoint polling.

The stats endpoint summarizes the task fleet: task counts by status, queue
depths, registered workers, periodic schedules and per-database breakdowns.
"""

from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, Field, ValidationError

from reproq_tui.client import ReproqClient
from reproq_tui.errors import PayloadError, StatusError

logger = structlog.get_logger(__name__)


class WorkerInfo(BaseModel):
    """A worker registered with the fleet."""

    worker_id: str
    hostname: str = ""
    concurrency: int = 0
    queues: list[str] = Field(default_factory=list)
    last_seen_at: datetime | None = None
    version: str = ""


class PeriodicTask(BaseModel):
    """A scheduled periodic task."""

    name: str
    cron_expr: str = ""
    enabled: bool = True
    next_run_at: datetime | None = None


class QueueControl(BaseModel):
    """Pause state of a queue."""

    queue_name: str
    paused: bool = False
    paused_at: datetime | None = None
    reason: str = ""
    updated_at: datetime | None = None
    database: str = ""


class WorkerHealth(BaseModel):
    """Alive/dead worker counts."""

    alive: int = 0
    dead: int = 0


class SchedulerStatus(BaseModel):
    """How periodic tasks are scheduled."""

    mode: str = ""
    low_memory: bool = False
    beat_enabled: bool = False
    beat_configured: bool = False
    pg_cron_available: bool = False
    warning: str = ""


class FailingTask(BaseModel):
    """A task path with its recent failure count."""

    task_path: str
    count: int = 0


class DatabaseStats(BaseModel):
    """Per-database breakdown for multi-database deployments."""

    alias: str
    tasks: dict[str, int] = Field(default_factory=dict)
    queues: dict[str, dict[str, int]] = Field(default_factory=dict)
    workers: list[WorkerInfo] = Field(default_factory=list)
    periodic: list[PeriodicTask] = Field(default_factory=list)


class FleetStats(BaseModel):
    """Fleet-wide statistics returned by the stats endpoint.

    Attributes:
        tasks: Task counts keyed by status.
        queues: Queue name to per-status counts.
        workers: Registered workers.
        periodic: Periodic task schedules.
        queue_controls: Queue pause states.
        worker_health: Alive/dead worker counts, if reported.
        scheduler: Scheduler status, if reported.
        top_failing: Tasks with the most recent failures.
        databases: Per-database breakdowns.
        fetched_at: Local time the poll finished.
    """

    tasks: dict[str, int] = Field(default_factory=dict)
    queues: dict[str, dict[str, int]] = Field(default_factory=dict)
    workers: list[WorkerInfo] = Field(default_factory=list)
    periodic: list[PeriodicTask] = Field(default_factory=list)
    queue_controls: list[QueueControl] = Field(default_factory=list)
    worker_health: WorkerHealth | None = None
    scheduler: SchedulerStatus | None = None
    top_failing: list[FailingTask] = Field(default_factory=list)
    databases: list[DatabaseStats] = Field(default_factory=list)
    fetched_at: datetime | None = None

    def task_count(self, status: str) -> int:
        """Fleet-wide task count for a status such as "READY" (0 if absent)."""
        return self.tasks.get(status.upper(), 0)

    def queue_count(self, queue: str, status: str = "READY") -> int:
        """Task count for one queue and status (0 if absent)."""
        return self.queues.get(queue, {}).get(status.upper(), 0)


async def fetch_stats(
    client: ReproqClient,
    url: str,
    *,
    timeout: float | None = None,
) -> FleetStats:
    """Poll the stats endpoint once.

    Args:
        client: Shared HTTP client.
        url: Stats endpoint URL.
        timeout: Request timeout in seconds (defaults to the client's).

    Returns:
        Validated fleet statistics with ``fetched_at`` set.

    Raises:
        TransportError: If the endpoint could not be reached.
        StatusError: If the endpoint answered with a non-2xx status.
        PayloadError: If the body is not a valid stats document.
    """
    response = await client.get(url, timeout=timeout)
    if not response.is_success:
        raise StatusError(response.status_code, url=url)

    try:
        stats = FleetStats.model_validate_json(response.content)
    except ValidationError as e:
        raise PayloadError(
            f"invalid stats payload from {url}",
            details={"errors": e.error_count()},
        ) from e

    stats.fetched_at = datetime.now(UTC)
    logger.debug(
        "stats_fetched",
        url=url,
        workers=len(stats.workers),
        queues=len(stats.queues),
    )
    return stats
