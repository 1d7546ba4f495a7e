"""Tests for stats endpoint polling."""

import httpx
import pytest

from reproq_tui.client import ReproqClient
from reproq_tui.errors import PayloadError, StatusError
from reproq_tui.stats import FleetStats, fetch_stats

STATS_URL = "https://app.local/reproq/stats/"

STATS_PAYLOAD = {
    "tasks": {"READY": 12, "RUNNING": 3, "FAILED": 1},
    "queues": {"default": {"READY": 10, "RUNNING": 2}, "mail": {"READY": 2}},
    "workers": [
        {
            "worker_id": "w1",
            "hostname": "host-1",
            "concurrency": 8,
            "queues": ["default"],
            "last_seen_at": "2024-03-01T12:00:00Z",
            "version": "1.4.0",
        }
    ],
    "periodic": [{"name": "cleanup", "cron_expr": "0 * * * *", "enabled": True}],
    "queue_controls": [{"queue_name": "mail", "paused": True, "reason": "maintenance"}],
    "worker_health": {"alive": 1, "dead": 0},
    "scheduler": {"mode": "beat", "beat_enabled": True},
    "top_failing": [{"task_path": "app.tasks.send", "count": 4}],
}


def make_client(response: httpx.Response) -> ReproqClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return response

    return ReproqClient(transport=httpx.MockTransport(handler))


class TestFetchStats:
    """Tests for fetch_stats."""

    @pytest.mark.asyncio
    async def test_parses_payload(self) -> None:
        """A full payload should be validated into FleetStats."""
        async with make_client(httpx.Response(200, json=STATS_PAYLOAD)) as client:
            stats = await fetch_stats(client, STATS_URL)

        assert stats.task_count("ready") == 12
        assert stats.queue_count("default") == 10
        assert stats.queue_count("mail", "running") == 0
        assert stats.workers[0].worker_id == "w1"
        assert stats.queue_controls[0].paused is True
        assert stats.worker_health is not None
        assert stats.worker_health.alive == 1
        assert stats.scheduler is not None
        assert stats.scheduler.mode == "beat"
        assert stats.top_failing[0].count == 4
        assert stats.fetched_at is not None

    @pytest.mark.asyncio
    async def test_missing_collections_default_empty(self) -> None:
        """Absent sections should default to empty values."""
        async with make_client(httpx.Response(200, json={})) as client:
            stats = await fetch_stats(client, STATS_URL)

        assert stats.tasks == {}
        assert stats.workers == []
        assert stats.databases == []
        assert stats.worker_health is None

    @pytest.mark.asyncio
    async def test_error_status(self) -> None:
        """Non-2xx responses should raise StatusError."""
        async with make_client(httpx.Response(404, text="not found")) as client:
            with pytest.raises(StatusError) as exc_info:
                await fetch_stats(client, STATS_URL)

        assert exc_info.value.is_not_found

    @pytest.mark.asyncio
    async def test_invalid_payload(self) -> None:
        """Malformed bodies should raise PayloadError."""
        async with make_client(httpx.Response(200, json={"workers": [{"hostname": "x"}]})) as client:
            with pytest.raises(PayloadError):
                await fetch_stats(client, STATS_URL)

    @pytest.mark.asyncio
    async def test_not_json(self) -> None:
        """Non-JSON bodies should raise PayloadError."""
        async with make_client(httpx.Response(200, text="<html>")) as client:
            with pytest.raises(PayloadError):
                await fetch_stats(client, STATS_URL)


class TestFleetStats:
    """Tests for FleetStats helpers."""

    def test_counts_default_to_zero(self) -> None:
        """Unknown statuses and queues should count as zero."""
        stats = FleetStats()
        assert stats.task_count("READY") == 0
        assert stats.queue_count("missing") == 0
