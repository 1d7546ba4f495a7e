"""Async HTTP client shared by the scrape, poll and event stream components.

The client wraps a lazily created ``httpx.AsyncClient`` and injects a mutable
header set into every request. The header set is updated by the auth flow
(bearer tokens) while requests may be in flight, so access is serialized by a
lock and readers only ever see a snapshot copy.
"""

import asyncio
import threading
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager

import httpx
import structlog

from reproq_tui.errors import TransportError

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 2.0
AUTHORIZATION_HEADER = "Authorization"


class HeaderStore:
    """Lock-guarded request headers.

    Writers hold the lock for the whole update. Readers hold it only long
    enough to copy the current headers, so an in-flight request never
    observes a half-applied change.
    """

    def __init__(self, headers: Mapping[str, str] | None = None) -> None:
        self._headers = httpx.Headers(dict(headers or {}))
        self._lock = threading.Lock()

    def snapshot(self) -> dict[str, str]:
        """Return a copy of the current headers."""
        with self._lock:
            return dict(self._headers.items())

    def set(self, key: str, value: str) -> None:
        """Set (replace) a header. Empty keys are ignored."""
        if not key:
            return
        with self._lock:
            self._headers[key] = value

    def clear(self, key: str) -> None:
        """Remove a header if present. Empty keys are ignored."""
        if not key:
            return
        with self._lock:
            if key in self._headers:
                del self._headers[key]

    def has(self, key: str) -> bool:
        """Check whether a header is set (case-insensitive)."""
        if not key:
            return False
        with self._lock:
            return key in self._headers


class ReproqClient:
    """Async client for the worker and Django endpoints.

    Example:
        client = ReproqClient(timeout=2.0)
        client.set_bearer_token(token)
        response = await client.get("http://worker:9100/metrics")
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        headers: Mapping[str, str] | None = None,
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            timeout: Default per-request timeout in seconds. Values <= 0
                fall back to DEFAULT_TIMEOUT.
            headers: Initial headers sent with every request.
            verify: Verify TLS certificates.
            transport: Optional httpx transport (used by tests).
        """
        self.timeout = timeout if timeout > 0 else DEFAULT_TIMEOUT
        self.headers = HeaderStore(headers)
        self._verify = verify
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._logger = logger.bind(component="reproq_client")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                verify=self._verify,
                transport=self._transport,
                trust_env=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ReproqClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def set_header(self, key: str, value: str) -> None:
        """Set a header on all subsequent requests."""
        self.headers.set(key, value)

    def clear_header(self, key: str) -> None:
        """Stop sending a header."""
        self.headers.clear(key)

    def has_header(self, key: str) -> bool:
        """Check whether a header is configured (case-insensitive)."""
        return self.headers.has(key)

    def set_bearer_token(self, token: str | None) -> None:
        """Install or remove the bearer token used for authentication.

        Args:
            token: Token value; empty or None clears the Authorization header.
        """
        if token:
            self.headers.set(AUTHORIZATION_HEADER, f"Bearer {token}")
        else:
            self.headers.clear(AUTHORIZATION_HEADER)

    async def get(self, url: str, *, timeout: float | None = None) -> httpx.Response:
        """Issue a GET request and read the full response body.

        The status code is not checked; callers decide which statuses are
        errors.

        Args:
            url: Absolute URL to fetch.
            timeout: Per-request timeout in seconds (defaults to the client's).

        Returns:
            The httpx response with its body loaded.

        Raises:
            TransportError: If no response was received.
        """
        client = await self._get_client()
        self._logger.debug("http_get", url=url)
        try:
            return await client.get(
                url,
                headers=self.headers.snapshot(),
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TransportError as e:
            raise TransportError(
                f"request to {url} failed: {e}",
                url=url,
                details={"exception_type": type(e).__name__},
            ) from e

    @asynccontextmanager
    async def stream(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a long-lived streaming GET request.

        Connecting and receiving the response headers are bounded by
        ``timeout``; reads on an open stream wait indefinitely so idle
        streams are not torn down.

        Args:
            url: Absolute URL to stream.
            headers: Extra headers for this request only.
            timeout: Connect timeout in seconds (defaults to the client's).

        Yields:
            The streaming response; the body has not been read.

        Raises:
            TransportError: If no response headers arrived in time.
        """
        client = await self._get_client()
        request_headers = self.headers.snapshot()
        if headers:
            request_headers.update(headers)
        connect_timeout = timeout if timeout is not None else self.timeout
        request = client.build_request(
            "GET",
            url,
            headers=request_headers,
            timeout=httpx.Timeout(connect_timeout, read=None),
        )
        self._logger.debug("http_stream_open", url=url)
        try:
            response = await asyncio.wait_for(
                client.send(request, stream=True),
                timeout=connect_timeout if connect_timeout > 0 else None,
            )
        except TimeoutError as e:
            raise TransportError(
                f"stream from {url} timed out after {connect_timeout}s waiting for a response",
                url=url,
                details={"exception_type": type(e).__name__},
            ) from e
        except httpx.TransportError as e:
            raise TransportError(
                f"stream from {url} failed: {e}",
                url=url,
                details={"exception_type": type(e).__name__},
            ) from e
        try:
            yield response
        finally:
            await response.aclose()
