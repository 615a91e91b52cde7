"""Custom exceptions for the proxy application."""

from typing import Any, Dict, Optional


class ProxyError(Exception):
    """Base class for proxy exceptions with HTTP status code.

    All custom exceptions inherit from this class and define their
    status_code so one exception handler can render them.
    """
    status_code: int = 500

    def __init__(
        self,
        message: str = "Proxy error",
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload or {}
        self.headers = headers or {}
        super().__init__(message)

    def to_response(self) -> dict:
        """Convert to the JSON error body."""
        return {"error": self.message, **self.payload}


class ConfigError(ProxyError):
    """Raised when a required secret is missing or too weak.

    Maps to HTTP 500. Operators see the cause in the logs and the body.
    """
    status_code = 500


class ClientError(ProxyError):
    """Raised for requests the proxy refuses to serve.

    Bad method, missing or disallowed endpoint, SSRF-looking endpoint,
    bot-like User-Agent. Defaults to HTTP 400.
    """
    status_code = 400


class AdmissionError(ProxyError):
    """Raised when the rate limiter rejects a request.

    Maps to HTTP 429 Too Many Requests with a Retry-After header.
    """
    status_code = 429

    def __init__(self, message: str, retry_after: int, reason: str = "rate_limited"):
        self.retry_after = retry_after
        self.reason = reason
        super().__init__(message, headers={"Retry-After": str(retry_after)})


class UpstreamError(ProxyError):
    """Raised when the stats API is unreachable or answers with non-JSON.

    Maps to HTTP 502, or to the upstream status when the upstream did
    answer but with a body that is not JSON.
    """
    status_code = 502
