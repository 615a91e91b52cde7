"""Middleware package for the proxy."""

from statsproxy.app.middleware.security_headers import OriginPolicy, SecurityHeadersMiddleware

__all__ = [
    "OriginPolicy",
    "SecurityHeadersMiddleware",
]
