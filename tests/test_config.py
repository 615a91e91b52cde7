import pytest
from pydantic import ValidationError

from statsproxy.app.core.config import Settings


def test_defaults_match_the_deployed_limits() -> None:
    settings = Settings(_env_file=None)
    assert settings.burst_capacity == 25
    assert settings.burst_refill_tokens == 25
    assert settings.burst_refill_seconds == 10.0
    assert settings.sustained_window_seconds == 600.0
    assert settings.sustained_max == 180
    assert settings.ban_seconds == 30
    assert (settings.ip_only_per_minute, settings.ip_per_minute, settings.token_per_minute) == (10, 60, 120)
    assert settings.allowed_endpoints == ["/players", "/season_averages", "/stats", "/games"]


def test_secret_strength(monkeypatch) -> None:
    monkeypatch.setenv("NS_PROXY_SECRET", "x" * 31)
    assert Settings(_env_file=None).signing_secret_ok is False

    monkeypatch.setenv("NS_PROXY_SECRET", "x" * 32)
    assert Settings(_env_file=None).signing_secret_ok is True


def test_upstream_key_is_stripped(monkeypatch) -> None:
    monkeypatch.setenv("BALLDONTLIE_API_KEY", "  abc123\n")
    assert Settings(_env_file=None).upstream_api_key == "abc123"


def test_allowed_origins_accept_bare_hosts(monkeypatch) -> None:
    monkeypatch.setenv("ALLOWED_ORIGINS", "example.com, https://app.example.org/")

    settings = Settings(_env_file=None)
    assert settings.allowed_origins == ["https://example.com", "https://app.example.org"]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('["https://a.example"]', ["https://a.example"]),
        ("*", []),
        ("[]", []),
        ("", []),
    ],
)
def test_allowed_origins_parsing_variants(monkeypatch, raw: str, expected: list[str]) -> None:
    monkeypatch.setenv("ALLOWED_ORIGINS", raw)

    settings = Settings(_env_file=None)
    assert settings.allowed_origins == expected


def test_allowed_endpoints_from_env(monkeypatch) -> None:
    monkeypatch.setenv("ALLOWED_ENDPOINTS", "players, teams,/games")

    settings = Settings(_env_file=None)
    assert settings.allowed_endpoints == ["/players", "/teams", "/games"]


def test_invalid_preview_pattern_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, preview_origin_pattern="([a-z")


@pytest.mark.parametrize("field", ["burst_capacity", "sustained_max", "ip_only_per_minute"])
def test_limits_must_be_positive(field: str) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: 0})


@pytest.mark.parametrize(("raw", "expected"), [("0.5", 0.5), ("-1", 0.15), ("abc", 0.15), ("1", 1.0)])
def test_traces_sample_rate(monkeypatch, raw: str, expected: float) -> None:
    monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", raw)
    assert Settings(_env_file=None).traces_sample_rate == expected


def test_public_config_fallback_env_names(monkeypatch) -> None:
    monkeypatch.delenv("SENTRY_DSN_PUBLIC", raising=False)
    monkeypatch.delenv("NIOSPORTS_RELEASE", raising=False)
    monkeypatch.delenv("VERCEL_GIT_COMMIT_SHA", raising=False)
    monkeypatch.setenv("SENTRY_DSN", "https://fallback@sentry.example/2")
    monkeypatch.setenv("GIT_COMMIT_SHA", "abc1234")

    settings = Settings(_env_file=None)
    assert settings.sentry_dsn == "https://fallback@sentry.example/2"
    assert settings.release == "abc1234"
