"""Adaptive rate limiting for the proxy.

Burst token bucket + sustained sliding window with temporary bans, and
legacy per-minute counters by IP and token id.
"""

from statsproxy.app.services.rate_limit.limiter import AdaptiveRateLimiter
from statsproxy.app.services.rate_limit.models import RateLimitResult, TokenBucket
from statsproxy.app.services.rate_limit.weights import (
    bot_risk_score,
    request_weight,
    route_weight,
)

__all__ = [
    # Models
    "RateLimitResult",
    "TokenBucket",
    # Limiter
    "AdaptiveRateLimiter",
    # Weights
    "bot_risk_score",
    "request_weight",
    "route_weight",
]
