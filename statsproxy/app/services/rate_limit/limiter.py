"""Adaptive in-memory rate limiter.

Two independent admission checks run for every request:

- burst: a token bucket refilled in whole steps (N tokens every T seconds)
- sustained: a sliding window of request timestamps

Failing either bans the key for a short cooldown. Legacy per-minute
counters keyed by IP and by token id are layered on top and only consulted
once the adaptive checks passed.

State lives in this object for the lifetime of the process. There is no
cross-instance coordination, so under scale-out each warm instance
enforces its own limits.
"""

import asyncio
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from statsproxy.app.core.config import Settings
from statsproxy.app.services.rate_limit.models import RateLimitResult, TokenBucket

BANNED_MESSAGE = "Too many requests. Cooldown active."
EXCEEDED_MESSAGE = "Rate limit exceeded"
NO_TOKEN_MESSAGE = "Rate limit (no token). Call /api/proxy?init=1 and send X-NS-Token."
IP_MESSAGE = "Rate limit (ip)."
TOKEN_MESSAGE = "Rate limit (token)."


def _prune(hits: Deque[float], cutoff: float) -> None:
    while hits and hits[0] < cutoff:
        hits.popleft()


class AdaptiveRateLimiter:
    """Burst + sustained admission control with bans and legacy counters.

    All timestamps are seconds. Methods accept an explicit ``now`` so the
    caller can evaluate a whole request against a single instant; when it
    is omitted the limiter's clock is used.
    """

    def __init__(
        self,
        burst_capacity: int = 25,
        burst_refill_tokens: int = 25,
        burst_refill_seconds: float = 10.0,
        sustained_window_seconds: float = 600.0,
        sustained_max: int = 180,
        ban_seconds: int = 30,
        legacy_window_seconds: float = 60.0,
        ip_only_per_minute: int = 10,
        ip_per_minute: int = 60,
        token_per_minute: int = 120,
        clock: Callable[[], float] = time.time,
    ):
        self.burst_capacity = burst_capacity
        self.burst_refill_tokens = burst_refill_tokens
        self.burst_refill_seconds = burst_refill_seconds
        self.sustained_window_seconds = sustained_window_seconds
        self.sustained_max = sustained_max
        self.ban_seconds = ban_seconds
        self.legacy_window_seconds = legacy_window_seconds
        self.ip_only_per_minute = ip_only_per_minute
        self.ip_per_minute = ip_per_minute
        self.token_per_minute = token_per_minute
        self.clock = clock

        self._buckets: Dict[str, TokenBucket] = {}
        self._sustained: Dict[str, Deque[float]] = {}
        self._bans: Dict[str, float] = {}
        self._ip_hits: Dict[str, Deque[float]] = {}
        self._token_hits: Dict[str, Deque[float]] = {}

        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, config: Settings) -> "AdaptiveRateLimiter":
        return cls(
            burst_capacity=config.burst_capacity,
            burst_refill_tokens=config.burst_refill_tokens,
            burst_refill_seconds=config.burst_refill_seconds,
            sustained_window_seconds=config.sustained_window_seconds,
            sustained_max=config.sustained_max,
            ban_seconds=config.ban_seconds,
            legacy_window_seconds=config.legacy_window_seconds,
            ip_only_per_minute=config.ip_only_per_minute,
            ip_per_minute=config.ip_per_minute,
            token_per_minute=config.token_per_minute,
        )

    def _now(self, now: Optional[float]) -> float:
        return self.clock() if now is None else now

    # -- bans -------------------------------------------------------------

    def is_banned(self, key: str, now: Optional[float] = None) -> bool:
        """Check the ban record, lifting it once it has expired."""
        until = self._bans.get(key)
        if until is None:
            return False
        if self._now(now) > until:
            del self._bans[key]
            return False
        return True

    def ban(self, key: str, now: Optional[float] = None) -> None:
        self._bans[key] = self._now(now) + self.ban_seconds

    # -- adaptive checks --------------------------------------------------

    def _allow_burst(self, key: str, weight: int, now: float) -> bool:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = TokenBucket(tokens=float(self.burst_capacity), last_refill=now)
            self._buckets[key] = bucket

        # Refill in whole intervals only; the clock advances by the consumed
        # intervals so partial progress toward the next step is kept.
        elapsed = now - bucket.last_refill
        if elapsed > 0:
            steps = int(elapsed // self.burst_refill_seconds)
            if steps > 0:
                bucket.tokens = min(
                    float(self.burst_capacity),
                    bucket.tokens + steps * self.burst_refill_tokens,
                )
                bucket.last_refill += steps * self.burst_refill_seconds

        if bucket.tokens >= weight:
            bucket.tokens -= weight
            return True
        return False

    def _allow_sustained(self, key: str, weight: int, now: float) -> bool:
        hits = self._sustained.get(key)
        if hits is None:
            hits = self._sustained[key] = deque()
        _prune(hits, now - self.sustained_window_seconds)

        # Entries are recorded before the ceiling check, so a rejected
        # request still counts against the window.
        hits.extend([now] * weight)
        return len(hits) <= self.sustained_max

    async def check(self, key: str, weight: int = 1, now: Optional[float] = None) -> RateLimitResult:
        """Run the ban, burst and sustained checks for one request.

        Both algorithms are always evaluated so each one debits its own
        budget. A failure in either bans the key.
        """
        async with self._lock:
            now = self._now(now)

            if self.is_banned(key, now):
                return RateLimitResult(
                    allowed=False,
                    reason="banned",
                    retry_after=self.ban_seconds,
                    message=BANNED_MESSAGE,
                )

            ok_burst = self._allow_burst(key, weight, now)
            ok_sustained = self._allow_sustained(key, weight, now)

            if ok_burst and ok_sustained:
                return RateLimitResult(allowed=True)

            self.ban(key, now)
            if not ok_burst and not ok_sustained:
                reason = "burst+sustained"
            elif not ok_burst:
                reason = "burst"
            else:
                reason = "sustained"
            return RateLimitResult(
                allowed=False,
                reason=reason,
                retry_after=self.ban_seconds,
                message=EXCEEDED_MESSAGE,
            )

    # -- legacy per-minute counters ---------------------------------------

    def _take_hit(self, store: Dict[str, Deque[float]], key: str, now: float) -> int:
        hits = store.get(key)
        if hits is None:
            hits = store[key] = deque()
        _prune(hits, now - self.legacy_window_seconds)
        hits.append(now)
        return len(hits)

    async def check_legacy(
        self, ip: str, token_id: Optional[str] = None, now: Optional[float] = None
    ) -> RateLimitResult:
        """Apply the per-minute IP and token ceilings.

        Callers without a verified token (``token_id`` is None) get the
        lower IP-only ceiling. Token holders are checked against the IP
        ceiling and, if that passes, the per-token ceiling.
        """
        async with self._lock:
            now = self._now(now)
            retry_after = int(self.legacy_window_seconds)
            ip_count = self._take_hit(self._ip_hits, ip, now)

            if token_id is None:
                if ip_count > self.ip_only_per_minute:
                    return RateLimitResult(
                        allowed=False,
                        reason="legacy_ip_only",
                        retry_after=retry_after,
                        message=NO_TOKEN_MESSAGE,
                    )
                return RateLimitResult(allowed=True)

            if ip_count > self.ip_per_minute:
                return RateLimitResult(
                    allowed=False,
                    reason="legacy_ip",
                    retry_after=retry_after,
                    message=IP_MESSAGE,
                )

            token_count = self._take_hit(self._token_hits, token_id, now)
            if token_count > self.token_per_minute:
                return RateLimitResult(
                    allowed=False,
                    reason="legacy_token",
                    retry_after=retry_after,
                    message=TOKEN_MESSAGE,
                )
            return RateLimitResult(allowed=True)

    # -- housekeeping -----------------------------------------------------

    def tokens_left(self, key: str) -> Optional[float]:
        bucket = self._buckets.get(key)
        return bucket.tokens if bucket else None

    def sustained_count(self, key: str) -> int:
        return len(self._sustained.get(key, ()))

    def stats(self) -> Dict[str, int]:
        return {
            "buckets": len(self._buckets),
            "sustained": len(self._sustained),
            "bans": len(self._bans),
            "ip_counters": len(self._ip_hits),
            "token_counters": len(self._token_hits),
        }

    async def cleanup(self, now: Optional[float] = None) -> int:
        """Drop state that no longer affects any decision.

        Not required for correctness (everything is pruned lazily on
        access); it only bounds memory for long-lived processes.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            now = self._now(now)
            removed = 0

            for key in [k for k, until in self._bans.items() if now > until]:
                del self._bans[key]
                removed += 1

            # A bucket idle this long is full again; dropping it only resets
            # its refill phase.
            full_after = (
                -(-self.burst_capacity // self.burst_refill_tokens)
                * self.burst_refill_seconds
            )
            for key in [
                k for k, b in self._buckets.items() if now - b.last_refill >= full_after
            ]:
                del self._buckets[key]
                removed += 1

            for store, window in (
                (self._sustained, self.sustained_window_seconds),
                (self._ip_hits, self.legacy_window_seconds),
                (self._token_hits, self.legacy_window_seconds),
            ):
                for key in list(store):
                    _prune(store[key], now - window)
                    if not store[key]:
                        del store[key]
                        removed += 1

            return removed
