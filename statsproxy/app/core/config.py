import json
import re
from typing import Annotated, Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []

    # Prefer JSON (recommended format), but tolerate comma separated values
    # and bare hosts so a misconfigured deployment still boots.
    if raw.startswith(("[", '"', "'")):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]
        if isinstance(parsed, str):
            raw = parsed.strip()

    parts = [p for p in re.split(r"[,\s]+", raw) if p]
    origins: list[str] = []
    for part in parts:
        # A wildcard would defeat the reflected allow-list.
        if part == "*":
            continue
        if "://" in part:
            origins.append(part.rstrip("/"))
            continue
        # Browsers send the scheme in the Origin header; a bare host only
        # makes sense over HTTPS for this deployment.
        origins.append(f"https://{part.rstrip('/')}")

    seen: set[str] = set()
    result: list[str] = []
    for origin in origins:
        if origin in seen:
            continue
        seen.add(origin)
        result.append(origin)
    return result


def _parse_prefixes(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.strip()
        if raw.startswith("["):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                raw = raw.strip("[]")
        if isinstance(raw, str):
            raw = raw.split(",")
    prefixes = []
    for item in raw:
        item = str(item).strip().strip("\"'")
        if not item:
            continue
        if not item.startswith("/"):
            item = f"/{item}"
        prefixes.append(item)
    return prefixes


class Settings(BaseSettings):
    """Proxy settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    Secrets (upstream key, signing secret) are never sent to the client.
    """

    # Debug mode - enables exception messages in 500 responses
    debug: bool = False

    # Upstream sports-stats API
    upstream_base_url: str = "https://api.balldontlie.io/v1"
    balldontlie_api_key: str = ""
    upstream_user_agent: str = "NioSports-Pro-Proxy/1.0"
    upstream_cache_control: str = "s-maxage=120, stale-while-revalidate=600"
    allowed_endpoints: Annotated[list[str], NoDecode] = [
        "/players",
        "/season_averages",
        "/stats",
        "/games",
    ]

    # Signed challenge token
    ns_proxy_secret: str = ""
    min_secret_length: int = 32
    token_ttl_seconds: int = 600

    # Origins allowed to read proxy responses
    allowed_origins: Annotated[list[str], NoDecode] = [
        "https://josegarcia1003.github.io",
        "https://nio-sports-pro.vercel.app",
    ]
    preview_origin_pattern: str = r"^https://[a-z0-9-]+\.vercel\.app$"
    min_user_agent_length: int = 8

    # Burst token bucket
    burst_capacity: int = 25
    burst_refill_tokens: int = 25
    burst_refill_seconds: float = 10.0

    # Sustained sliding window
    sustained_window_seconds: float = 600.0
    sustained_max: int = 180

    ban_seconds: int = 30

    # Legacy per-minute limits, layered on top of the adaptive limiter
    legacy_window_seconds: float = 60.0
    ip_only_per_minute: int = 10
    ip_per_minute: int = 60
    token_per_minute: int = 120

    # HTTP client connection pool settings
    httpx_connect_timeout: float = 5.0
    httpx_read_timeout: float = 15.0
    httpx_write_timeout: float = 5.0
    httpx_pool_timeout: float = 5.0
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 50
    httpx_max_keepalive_connections: int = 10

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Public front-end telemetry config (safe to expose)
    sentry_dsn: str = Field(
        default="", validation_alias=AliasChoices("SENTRY_DSN_PUBLIC", "SENTRY_DSN")
    )
    environment: str = Field(
        default="production", validation_alias=AliasChoices("VERCEL_ENV", "NODE_ENV")
    )
    release: str = Field(
        default="",
        validation_alias=AliasChoices(
            "NIOSPORTS_RELEASE", "VERCEL_GIT_COMMIT_SHA", "GIT_COMMIT_SHA"
        ),
    )
    traces_sample_rate: float = Field(
        default=0.15, validation_alias="SENTRY_TRACES_SAMPLE_RATE"
    )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def decode_allowed_origins(cls, v: Any) -> list[str]:
        return _parse_origins(v)

    @field_validator("allowed_endpoints", mode="before")
    @classmethod
    def decode_allowed_endpoints(cls, v: Any) -> list[str]:
        return _parse_prefixes(v)

    @field_validator("preview_origin_pattern")
    @classmethod
    def validate_preview_pattern(cls, v: str) -> str:
        """Validate the preview origin pattern compiles."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"preview_origin_pattern is not a valid regex: {e}")
        return v

    @field_validator("traces_sample_rate", mode="before")
    @classmethod
    def clamp_traces_sample_rate(cls, v: Any) -> float:
        """Fall back to the default rate when the value is unusable."""
        try:
            rate = float(v)
        except (TypeError, ValueError):
            return 0.15
        if not 0.0 <= rate <= 1.0:
            return 0.15
        return rate

    @field_validator(
        "burst_capacity",
        "burst_refill_tokens",
        "sustained_max",
        "ban_seconds",
        "ip_only_per_minute",
        "ip_per_minute",
        "token_per_minute",
        "token_ttl_seconds",
    )
    @classmethod
    def validate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator(
        "burst_refill_seconds",
        "sustained_window_seconds",
        "legacy_window_seconds",
        "httpx_connect_timeout",
        "httpx_read_timeout",
    )
    @classmethod
    def validate_duration_positive(cls, v: float) -> float:
        """Validate durations and timeouts are positive."""
        if v <= 0:
            raise ValueError("Durations must be positive")
        return v

    @property
    def upstream_api_key(self) -> str:
        return self.balldontlie_api_key.strip()

    @property
    def signing_secret_ok(self) -> bool:
        return len(self.ns_proxy_secret) >= self.min_secret_length

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


# Global settings instance
settings = Settings()
