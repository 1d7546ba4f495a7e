"""Tests for the shared HTTP client."""

import httpx
import pytest

from reproq_tui.client import AUTHORIZATION_HEADER, HeaderStore, ReproqClient
from reproq_tui.errors import TransportError

URL = "http://worker.local/metrics"


class TestHeaderStore:
    """Tests for HeaderStore."""

    def test_set_and_has_case_insensitive(self) -> None:
        """Header lookups should ignore case."""
        store = HeaderStore({"X-Tenant": "a"})
        assert store.has("x-tenant")
        store.set("authorization", "Bearer t")
        assert store.has("Authorization")

    def test_clear(self) -> None:
        """Cleared headers should disappear; unknown keys are ignored."""
        store = HeaderStore({"X-Tenant": "a"})
        store.clear("X-TENANT")
        store.clear("missing")
        assert not store.has("X-Tenant")

    def test_empty_key_ignored(self) -> None:
        """Empty keys should never be stored or found."""
        store = HeaderStore()
        store.set("", "value")
        assert store.snapshot() == {}
        assert not store.has("")

    def test_snapshot_is_a_copy(self) -> None:
        """Changing a snapshot should not change the store."""
        store = HeaderStore({"X-Tenant": "a"})
        snapshot = store.snapshot()
        snapshot["x-tenant"] = "b"
        assert store.snapshot()["x-tenant"] == "a"


class TestReproqClient:
    """Tests for ReproqClient."""

    @pytest.mark.asyncio
    async def test_sends_headers(self) -> None:
        """Configured headers should be sent with every request."""
        received: list[httpx.Headers] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request.headers)
            return httpx.Response(200, text="ok")

        async with ReproqClient(
            headers={"X-Tenant": "a"},
            transport=httpx.MockTransport(handler),
        ) as client:
            client.set_bearer_token("token")
            response = await client.get(URL)
            client.set_bearer_token(None)
            await client.get(URL)

        assert response.text == "ok"
        assert received[0]["x-tenant"] == "a"
        assert received[0]["authorization"] == "Bearer token"
        assert "authorization" not in received[1]

    @pytest.mark.asyncio
    async def test_status_not_checked(self) -> None:
        """get should return error responses for the caller to judge."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="down")

        async with ReproqClient(transport=httpx.MockTransport(handler)) as client:
            response = await client.get(URL)

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self) -> None:
        """httpx transport failures should become TransportError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        async with ReproqClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.get(URL)

        assert exc_info.value.url == URL
        assert exc_info.value.details["exception_type"] == "ConnectTimeout"

    @pytest.mark.asyncio
    async def test_stream_merges_headers(self) -> None:
        """Per-request stream headers should be added to the shared ones."""
        received: list[httpx.Headers] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request.headers)
            return httpx.Response(200, content=b"data: x\n\n")

        async with ReproqClient(
            headers={"X-Tenant": "a"},
            transport=httpx.MockTransport(handler),
        ) as client:
            async with client.stream(URL, headers={"Accept": "text/event-stream"}) as response:
                lines = [line async for line in response.aiter_lines()]

        assert lines[0] == "data: x"
        assert received[0]["accept"] == "text/event-stream"
        assert received[0]["x-tenant"] == "a"

    def test_header_helpers(self) -> None:
        """Header helpers should delegate to the header store."""
        client = ReproqClient()
        client.set_header("X-Tenant", "a")
        assert client.has_header("x-tenant")
        client.clear_header("x-tenant")
        assert not client.has_header("X-Tenant")
        client.set_bearer_token("t")
        assert client.has_header(AUTHORIZATION_HEADER)

    def test_non_positive_timeout_uses_default(self) -> None:
        """Invalid timeouts should fall back to the default."""
        assert ReproqClient(timeout=0).timeout == 2.0
