"""Origin and security-header gate.

Every response leaving the proxy passes through this middleware, whatever
its status, so the static security headers and the reflected CORS headers
are applied uniformly. Preflight requests stop here with 204.
"""

import re
from typing import Dict, Iterable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-Frame-Options": "DENY",
}

CORS_ALLOW_METHODS = "GET,POST,OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, X-NS-Token, X-UID"
CORS_MAX_AGE = "600"


class OriginPolicy:
    """Exact allow-list plus a pattern for preview deployments.

    Args:
        allowed_origins: Origins matched exactly
        preview_pattern: Regex for preview deployment origins (case-insensitive)
    """

    def __init__(self, allowed_origins: Iterable[str], preview_pattern: Optional[str] = None):
        self.allowed_origins = frozenset(allowed_origins)
        self._preview = re.compile(preview_pattern, re.IGNORECASE) if preview_pattern else None

    def is_allowed(self, origin: Optional[str]) -> bool:
        if not origin:
            return False
        if origin in self.allowed_origins:
            return True
        return bool(self._preview and self._preview.match(origin))

    def cors_headers(self, origin: Optional[str]) -> Dict[str, str]:
        """Headers to attach for ``origin``; empty when it is not allowed."""
        if not self.is_allowed(origin):
            return {}
        return {
            "Access-Control-Allow-Origin": origin,
            "Vary": "Origin",
            "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
            "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
            "Access-Control-Max-Age": CORS_MAX_AGE,
        }


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security and CORS headers; answer preflight with 204."""

    def __init__(self, app, policy: OriginPolicy):
        super().__init__(app)
        self.policy = policy

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        headers = dict(SECURITY_HEADERS)
        headers.update(self.policy.cors_headers(request.headers.get("origin")))

        if request.method == "OPTIONS":
            return Response(status_code=204, headers=headers)

        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response
