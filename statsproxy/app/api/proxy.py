"""Proxy endpoint: token init, admission control and upstream forwarding."""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from statsproxy.app.core.config import Settings
from statsproxy.app.core.http_client import get_http_client
from statsproxy.app.core.logging import get_log_context, get_logger
from statsproxy.app.core.security import TokenService
from statsproxy.app.exceptions import AdmissionError, ClientError, ConfigError
from statsproxy.app.models import ClientContext
from statsproxy.app.services.forwarder import forward_stats, validate_endpoint
from statsproxy.app.services.rate_limit import AdaptiveRateLimiter, request_weight

router = APIRouter()
logger = get_logger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_rate_limiter(request: Request) -> AdaptiveRateLimiter:
    return request.app.state.rate_limiter


def get_client_context(request: Request) -> ClientContext:
    peer = request.client.host if request.client else None
    return ClientContext.from_headers(request.headers, peer)


def get_token_service(config: Settings) -> TokenService:
    """Build the token service, refusing to run with a missing or weak secret.

    Raises:
        ConfigError: If NS_PROXY_SECRET is shorter than the configured minimum
    """
    if not config.signing_secret_ok:
        logger.error("NS_PROXY_SECRET missing or shorter than %d characters", config.min_secret_length)
        raise ConfigError("Server not configured: NS_PROXY_SECRET missing/weak")
    return TokenService(config.ns_proxy_secret, ttl_seconds=config.token_ttl_seconds)


@router.get("/api/proxy", response_model=None)
async def proxy(
    request: Request,
    init: Optional[str] = None,
    endpoint: Optional[str] = None,
    config: Settings = Depends(get_settings),
    limiter: AdaptiveRateLimiter = Depends(get_rate_limiter),
    client: ClientContext = Depends(get_client_context),
) -> JSONResponse:
    """Issue a token (``?init=1``) or proxy ``?endpoint=...`` upstream.

    Stages run strictly in order: User-Agent gate, secret check, token
    issue/verify, adaptive rate limit, legacy per-minute limits, endpoint
    allow-list, upstream call. Limiter state changes are kept even if a
    later stage rejects the request.
    """
    if not client.user_agent or len(client.user_agent) < config.min_user_agent_length:
        raise ClientError("Forbidden", status_code=403)

    tokens = get_token_service(config)

    if init == "1":
        issued = tokens.issue(client.ip, client.user_agent)
        return JSONResponse(
            content={"token": issued.token, "expiresInMs": issued.expires_in_ms},
            headers={"Cache-Control": "no-store"},
        )

    claims = tokens.verify(client.token, client.ip, client.user_agent)
    token_id = claims.jti if claims else None
    key = client.rate_limit_key(token_id)

    endpoint = endpoint or ""
    weight = request_weight(endpoint, client, config.min_user_agent_length)
    now = limiter.clock()

    result = await limiter.check(key, weight, now)
    if result.allowed:
        result = await limiter.check_legacy(client.ip, token_id, now)

    if not result.allowed:
        logger.warning(
            f"Request rejected by rate limiter ({result.reason})",
            extra=get_log_context(
                client_ip=client.ip,
                client_key=key,
                endpoint=endpoint or None,
                reason=result.reason,
                weight=weight,
            ),
        )
        raise AdmissionError(result.message, result.retry_after, result.reason)

    validate_endpoint(endpoint, config.allowed_endpoints)

    upstream = await forward_stats(
        get_http_client(),
        base_url=config.upstream_base_url,
        api_key=config.upstream_api_key,
        endpoint=endpoint,
        user_agent=config.upstream_user_agent,
        cache_control=config.upstream_cache_control,
    )
    return JSONResponse(
        content=upstream.data,
        status_code=upstream.status_code,
        headers=upstream.headers,
    )


@router.api_route("/api/proxy", methods=["POST", "PUT", "PATCH", "DELETE"], response_model=None)
async def proxy_method_not_allowed() -> JSONResponse:
    raise ClientError("Method not allowed", status_code=405)
