"""Error types shared by the telemetry core.

Exception Hierarchy:
    ReproqTuiError (base)
    ├── TransportError - connection refused, timeout, TLS failure
    ├── StatusError - non-2xx HTTP response, carries the status code
    ├── ExpositionParseError - malformed metrics exposition text
    ├── PayloadError - malformed JSON health/stats payload
    └── ConfigError - invalid settings or selector overrides

Missing data (unknown selector, empty label match, zero histogram count) is
never raised; it is represented as NaN in snapshot values.
"""

from typing import Any


class ReproqTuiError(Exception):
    """Base exception for all telemetry core errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error details.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class TransportError(ReproqTuiError):
    """Request never produced an HTTP response.

    Attributes:
        url: Target URL of the failed request.
    """

    def __init__(
        self,
        message: str,
        *,
        url: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.url = url

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        base = super().to_dict()
        base["url"] = self.url
        return base


class StatusError(ReproqTuiError):
    """Server answered with a non-2xx status.

    Callers use the code to tell auth failures (401/403) apart from
    not-found (404) and generic server errors.

    Attributes:
        url: URL that returned the status.
        code: HTTP status code.
    """

    def __init__(
        self,
        code: int,
        *,
        url: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        if url:
            message = f"http status {code} for {url}"
        else:
            message = f"http status {code}"
        super().__init__(message, details=details)
        self.url = url
        self.code = code

    @property
    def is_auth(self) -> bool:
        """Check if the status signals missing or rejected credentials."""
        return self.code in (401, 403)

    @property
    def is_not_found(self) -> bool:
        """Check if the resource is gone (e.g. stream ended, pairing expired)."""
        return self.code == 404

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        base = super().to_dict()
        base.update({"url": self.url, "code": self.code})
        return base


class ExpositionParseError(ReproqTuiError):
    """Metrics body could not be parsed as exposition text."""


class PayloadError(ReproqTuiError):
    """JSON payload from the health or stats endpoint was invalid."""


class ConfigError(ReproqTuiError):
    """Settings or selector overrides are invalid.

    Attributes:
        field: Name of the offending setting, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.field = field


def is_status(exc: BaseException | None, *codes: int) -> bool:
    """Check whether an exception is a StatusError with one of the given codes.

    Args:
        exc: Exception to inspect (None is accepted and never matches).
        *codes: Status codes to match.

    Returns:
        True if ``exc`` is a StatusError whose code is in ``codes``.
    """
    if not isinstance(exc, StatusError):
        return False
    return exc.code in codes
