"""Forward allow-listed requests to the sports-stats API."""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable

import httpx

from statsproxy.app.core.logging import get_log_context, get_logger
from statsproxy.app.exceptions import ClientError, ConfigError, UpstreamError

logger = get_logger(__name__)

SNIPPET_LENGTH = 200

_BEARER = re.compile(r"^bearer\s+", re.IGNORECASE)


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON and cannot be re-serialized to the browser.
    raise ValueError(f"Invalid JSON constant: {name}")


@dataclass
class UpstreamResponse:
    status_code: int
    data: Any
    headers: Dict[str, str] = field(default_factory=dict)


def validate_endpoint(endpoint: str | None, allowed_prefixes: Iterable[str]) -> str:
    """Check the requested endpoint against the allow-list.

    Raises:
        ClientError: 400 when missing, 403 when not allow-listed or when it
            carries an absolute URL (SSRF guard)
    """
    if not endpoint:
        raise ClientError("Missing endpoint parameter", status_code=400)
    if not any(endpoint.startswith(prefix) for prefix in allowed_prefixes):
        raise ClientError("Endpoint not allowed", status_code=403)
    if "http://" in endpoint or "https://" in endpoint:
        raise ClientError("Invalid endpoint", status_code=403)
    return endpoint


def authorization_header(api_key: str) -> str:
    """Upstream expects ``Authorization: Bearer <key>``."""
    if _BEARER.match(api_key):
        return api_key
    return f"Bearer {api_key}"


async def forward_stats(
    client: httpx.AsyncClient,
    base_url: str,
    api_key: str,
    endpoint: str,
    user_agent: str,
    cache_control: str,
) -> UpstreamResponse:
    """GET ``base_url + endpoint`` and normalize the reply.

    The body is read as text and parsed as JSON so a non-JSON upstream page
    never reaches the browser verbatim.

    Raises:
        ConfigError: If the upstream key is not configured
        UpstreamError: On network failure (502) or a non-JSON body
            (upstream status, truncated snippet)
    """
    api_key = api_key.strip()
    if not api_key:
        raise ConfigError(
            "Server not configured: BALLDONTLIE_API_KEY missing",
            payload={"hint": "Set BALLDONTLIE_API_KEY in the deployment environment."},
        )

    headers = {
        "Authorization": authorization_header(api_key),
        "Accept": "application/json",
        "User-Agent": user_agent,
    }
    cache_headers = {"Cache-Control": cache_control}

    try:
        resp = await client.get(f"{base_url}{endpoint}", headers=headers)
    except httpx.HTTPError as e:
        logger.warning(
            f"Upstream request failed: {type(e).__name__}",
            extra=get_log_context(endpoint=endpoint),
        )
        raise UpstreamError("Upstream API error") from e

    text = resp.text
    try:
        data = json.loads(text, parse_constant=_reject_constant) if text else None
    except ValueError:
        data = None

    if data is None:
        logger.warning(
            f"Upstream returned invalid JSON (status {resp.status_code})",
            extra=get_log_context(endpoint=endpoint, status_code=resp.status_code),
        )
        raise UpstreamError(
            "Upstream returned invalid JSON",
            status_code=resp.status_code,
            payload={
                "upstreamStatus": resp.status_code,
                "upstreamSnippet": (text or "")[:SNIPPET_LENGTH],
            },
            headers=cache_headers,
        )

    return UpstreamResponse(status_code=resp.status_code, data=data, headers=cache_headers)
