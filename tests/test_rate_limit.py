"""Tests for the adaptive rate limiter."""

import pytest

from statsproxy.app.core.config import Settings
from statsproxy.app.models import ClientContext
from statsproxy.app.services.rate_limit import (
    AdaptiveRateLimiter,
    bot_risk_score,
    request_weight,
    route_weight,
)

T0 = 10_000.0


@pytest.fixture
def limiter():
    return AdaptiveRateLimiter()


class TestBurstBucket:
    """Tests for the token bucket burst check."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("weight", [1, 2, 3, 4, 5])
    async def test_fresh_key_admits_capacity_over_weight(self, limiter, weight):
        admitted = limiter.burst_capacity // weight
        for i in range(admitted):
            result = await limiter.check("key", weight, now=T0)
            assert result.allowed is True, f"request {i + 1} should pass"

        result = await limiter.check("key", weight, now=T0)
        assert result.allowed is False
        assert result.reason == "burst"

    @pytest.mark.asyncio
    async def test_twenty_sixth_request_bans_and_twenty_seventh_hits_ban(self, limiter):
        for _ in range(25):
            assert (await limiter.check("key", 1, now=T0)).allowed

        result = await limiter.check("key", 1, now=T0 + 0.1)
        assert result.allowed is False
        assert result.reason == "burst"
        assert result.retry_after == 30

        tokens_before = limiter.tokens_left("key")
        sustained_before = limiter.sustained_count("key")
        result = await limiter.check("key", 1, now=T0 + 0.2)
        assert result.allowed is False
        assert result.reason == "banned"
        assert result.retry_after == 30
        assert result.message == "Too many requests. Cooldown active."
        # The ban short-circuits: bucket and window are untouched.
        assert limiter.tokens_left("key") == tokens_before
        assert limiter.sustained_count("key") == sustained_before

    @pytest.mark.asyncio
    async def test_refill_is_quantized_and_keeps_partial_progress(self):
        limiter = AdaptiveRateLimiter(
            burst_capacity=4, burst_refill_tokens=1, burst_refill_seconds=10.0
        )
        for _ in range(4):
            assert (await limiter.check("key", 1, now=0.0)).allowed
        assert limiter.tokens_left("key") == 0

        # 15s elapsed: one whole step; the refill clock advances to 10s, not 15s.
        assert (await limiter.check("key", 1, now=15.0)).allowed
        # 20s is a whole step after 10s, so another token is available.
        assert (await limiter.check("key", 1, now=20.0)).allowed

    @pytest.mark.asyncio
    async def test_no_refill_inside_an_interval(self):
        limiter = AdaptiveRateLimiter(
            burst_capacity=2, burst_refill_tokens=2, burst_refill_seconds=10.0
        )
        assert (await limiter.check("key", 2, now=0.0)).allowed
        result = await limiter.check("key", 1, now=9.99)
        assert result.allowed is False
        assert result.reason == "burst"

    @pytest.mark.asyncio
    async def test_refill_never_exceeds_capacity(self, limiter):
        assert (await limiter.check("key", 5, now=T0)).allowed
        assert (await limiter.check("key", 1, now=T0 + 3600)).allowed
        assert limiter.tokens_left("key") == limiter.burst_capacity - 1

    @pytest.mark.asyncio
    async def test_different_keys_independent(self, limiter):
        for _ in range(25):
            await limiter.check("ip:a", 1, now=T0)
        assert (await limiter.check("ip:a", 1, now=T0)).allowed is False

        result = await limiter.check("ip:b", 1, now=T0)
        assert result.allowed is True
        assert limiter.is_banned("ip:b", now=T0) is False


class TestBans:
    @pytest.mark.asyncio
    async def test_ban_expires_lazily(self, limiter):
        limiter.ban("key", now=T0)

        result = await limiter.check("key", 1, now=T0 + 29)
        assert result.reason == "banned"

        result = await limiter.check("key", 1, now=T0 + 31)
        assert result.allowed is True

    def test_ban_holds_at_exact_expiry(self, limiter):
        limiter.ban("key", now=T0)
        assert limiter.is_banned("key", now=T0 + 30) is True
        assert limiter.is_banned("key", now=T0 + 30.001) is False
        assert limiter.stats()["bans"] == 0


class TestSustainedWindow:
    @pytest.mark.asyncio
    async def test_ceiling_rejects_and_bans(self):
        limiter = AdaptiveRateLimiter(burst_capacity=1000, burst_refill_tokens=1000, sustained_max=5)
        for i in range(5):
            assert (await limiter.check("key", 1, now=T0 + i)).allowed

        result = await limiter.check("key", 1, now=T0 + 5)
        assert result.allowed is False
        assert result.reason == "sustained"
        assert limiter.is_banned("key", now=T0 + 6)

    @pytest.mark.asyncio
    async def test_rejected_request_still_counts(self):
        limiter = AdaptiveRateLimiter(burst_capacity=1000, burst_refill_tokens=1000, sustained_max=5)
        assert (await limiter.check("key", 3, now=T0)).allowed
        assert (await limiter.check("key", 3, now=T0 + 1)).allowed is False
        assert limiter.sustained_count("key") == 6

        # After the ban lifts, the inflated window still rejects.
        result = await limiter.check("key", 1, now=T0 + 40)
        assert result.allowed is False
        assert result.reason == "sustained"

    @pytest.mark.asyncio
    async def test_window_slides(self):
        limiter = AdaptiveRateLimiter(
            burst_capacity=1000, burst_refill_tokens=1000,
            sustained_max=5, sustained_window_seconds=600,
        )
        assert (await limiter.check("key", 5, now=T0)).allowed
        assert (await limiter.check("key", 5, now=T0 + 601)).allowed
        assert limiter.sustained_count("key") == 5

    @pytest.mark.asyncio
    async def test_both_failures_are_reported(self):
        limiter = AdaptiveRateLimiter(burst_capacity=2, burst_refill_tokens=2, sustained_max=2)
        result = await limiter.check("key", 3, now=T0)
        assert result.allowed is False
        assert result.reason == "burst+sustained"


class TestLegacyCounters:
    @pytest.mark.asyncio
    async def test_ip_only_ceiling_without_token(self, limiter):
        for _ in range(10):
            assert (await limiter.check_legacy("1.2.3.4", None, now=T0)).allowed

        result = await limiter.check_legacy("1.2.3.4", None, now=T0)
        assert result.allowed is False
        assert result.reason == "legacy_ip_only"
        assert result.retry_after == 60
        assert "init=1" in result.message

    @pytest.mark.asyncio
    async def test_ip_ceiling_with_token(self, limiter):
        for _ in range(60):
            assert (await limiter.check_legacy("1.2.3.4", "jti-1", now=T0)).allowed

        result = await limiter.check_legacy("1.2.3.4", "jti-1", now=T0)
        assert result.allowed is False
        assert result.reason == "legacy_ip"
        assert result.message == "Rate limit (ip)."

    @pytest.mark.asyncio
    async def test_token_ceiling(self):
        limiter = AdaptiveRateLimiter(ip_per_minute=1000, token_per_minute=3)
        for i in range(3):
            assert (await limiter.check_legacy(f"10.0.0.{i}", "jti-1", now=T0)).allowed

        result = await limiter.check_legacy("10.0.0.9", "jti-1", now=T0)
        assert result.allowed is False
        assert result.reason == "legacy_token"
        assert result.message == "Rate limit (token)."

    @pytest.mark.asyncio
    async def test_counters_reset_after_a_minute(self, limiter):
        for _ in range(11):
            await limiter.check_legacy("1.2.3.4", None, now=T0)
        result = await limiter.check_legacy("1.2.3.4", None, now=T0 + 61)
        assert result.allowed is True


class TestCleanup:
    @pytest.mark.asyncio
    async def test_cleanup_drops_idle_state(self, limiter):
        await limiter.check("key", 5, now=T0)
        await limiter.check_legacy("1.2.3.4", "jti", now=T0)
        limiter.ban("other", now=T0)

        assert await limiter.cleanup(now=T0 + 5) == 0

        removed = await limiter.cleanup(now=T0 + 3600)
        assert removed == 5
        assert limiter.stats() == {
            "buckets": 0,
            "sustained": 0,
            "bans": 0,
            "ip_counters": 0,
            "token_counters": 0,
        }


class TestSettings:
    def test_from_settings(self):
        config = Settings(_env_file=None, burst_capacity=7, sustained_max=9, ban_seconds=45)
        limiter = AdaptiveRateLimiter.from_settings(config)
        assert limiter.burst_capacity == 7
        assert limiter.sustained_max == 9
        assert limiter.ban_seconds == 45


class TestWeights:
    BROWSER = ClientContext(
        ip="1.2.3.4",
        user_agent="Mozilla/5.0 (Windows NT 10.0) Chrome/120.0",
        accept="text/html",
        accept_language="es-ES",
    )

    def test_route_weight(self):
        assert route_weight("/stats?seasons[]=2024") == 2
        assert route_weight("/players") == 1
        assert route_weight("/games") == 1

    def test_browser_has_no_risk(self):
        assert bot_risk_score(self.BROWSER) == 0
        assert request_weight("/players", self.BROWSER) == 1
        assert request_weight("/stats", self.BROWSER) == 2

    def test_missing_endpoint_weighs_one(self):
        assert request_weight("", self.BROWSER) == 1

    def test_user_agent_length_threshold_is_configurable(self):
        client = ClientContext(ip="1.2.3.4", user_agent="Lynx/2", accept="*/*", accept_language="en")
        assert request_weight("/players", client) == 3
        assert request_weight("/players", client, min_user_agent_length=4) == 1

    def test_tool_user_agent(self):
        client = ClientContext(ip="1.2.3.4", user_agent="curl/8.4.0")
        # +2 tool UA, +1 no Accept-Language, +1 no Accept
        assert bot_risk_score(client) == 4
        assert request_weight("/players", client) == 4
        assert request_weight("/stats", client) == 5

    def test_worst_case_is_capped(self):
        client = ClientContext(ip="1.2.3.4", user_agent="python")
        assert bot_risk_score(client) == 6
        assert request_weight("/stats", client) == 5
