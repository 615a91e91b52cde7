"""Core utilities for the proxy application."""

from statsproxy.app.core.config import Settings, settings
from statsproxy.app.core.logging import get_logger, setup_logging
from statsproxy.app.core.security import TokenClaims, TokenService

__all__ = [
    "Settings",
    "settings",
    "get_logger",
    "setup_logging",
    "TokenClaims",
    "TokenService",
]
