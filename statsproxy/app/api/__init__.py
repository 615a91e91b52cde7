"""API endpoints package for the proxy."""

from statsproxy.app.api.proxy import router as proxy_router
from statsproxy.app.api.reports import router as reports_router

__all__ = [
    "proxy_router",
    "reports_router",
]
