"""Rate limiting data models.

This module contains dataclasses for rate limit state and results.
"""

import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request was admitted
        reason: Which check rejected it (banned, burst, sustained,
            burst+sustained, legacy_ip_only, legacy_ip, legacy_token)
        retry_after: Seconds the caller should wait before retrying
        message: Client facing error message
    """
    allowed: bool
    reason: Optional[str] = None
    retry_after: Optional[int] = None
    message: Optional[str] = None


@dataclass
class TokenBucket:
    """Token bucket state for the burst check.

    Invariant: 0 <= tokens <= capacity of the owning limiter.
    """
    tokens: float = field(default_factory=float)
    last_refill: float = field(default_factory=time.time)
