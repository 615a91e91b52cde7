from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from statsproxy import __version__
from statsproxy.app.api import proxy_router, reports_router
from statsproxy.app.core.config import Settings, settings as default_settings
from statsproxy.app.core.http_client import init_http_client
from statsproxy.app.core.logging import get_logger, setup_logging
from statsproxy.app.exceptions import ProxyError
from statsproxy.app.middleware.security_headers import (
    SECURITY_HEADERS,
    OriginPolicy,
    SecurityHeadersMiddleware,
)
from statsproxy.app.services.rate_limit import AdaptiveRateLimiter

# Messages for errors raised by routing itself rather than by the proxy.
_STATUS_TO_ERROR = {
    404: "Not found",
    405: "Method not allowed",
}


def create_app(config: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Settings to use; defaults to the environment-loaded settings

    Returns:
        Configured FastAPI application instance
    """
    config = config or default_settings

    setup_logging(config)
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[dict, None]:
        """Open the shared upstream HTTP client for the app's lifetime."""
        async with init_http_client(config) as http_client:
            if not config.signing_secret_ok:
                logger.warning(
                    "NS_PROXY_SECRET missing or shorter than %d characters; "
                    "proxy requests will fail with 500",
                    config.min_secret_length,
                )
            if not config.upstream_api_key:
                logger.warning("BALLDONTLIE_API_KEY missing; upstream calls will fail with 500")

            logger.info(
                "Application startup complete",
                extra={
                    "allowed_endpoints": config.allowed_endpoints,
                    "allowed_origins": config.allowed_origins,
                    "debug_mode": config.debug,
                },
            )
            yield {"http_client": http_client}

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Stats Proxy",
        description="Edge proxy for the sports-stats API with signed tokens and adaptive rate limiting",
        version=__version__,
        lifespan=lifespan,
    )

    # One limiter per process; its maps hold all admission state.
    app.state.settings = config
    app.state.rate_limiter = AdaptiveRateLimiter.from_settings(config)

    policy = OriginPolicy(config.allowed_origins, config.preview_origin_pattern)
    app.add_middleware(SecurityHeadersMiddleware, policy=policy)

    app.include_router(proxy_router)
    app.include_router(reports_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Report configuration readiness without revealing secrets."""
        secret_ok = config.signing_secret_ok
        upstream_ok = bool(config.upstream_api_key)
        return {
            "status": "ok" if secret_ok and upstream_ok else "degraded",
            "components": {
                "signing_secret": {"configured": secret_ok},
                "upstream": {"configured": upstream_ok, "base_url": config.upstream_base_url},
                "rate_limiter": app.state.rate_limiter.stats(),
            },
        }

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
        """Render ProxyError subclasses as ``{"error": ...}`` JSON."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(),
            headers=exc.headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = _STATUS_TO_ERROR.get(exc.status_code)
        if message is None:
            message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": message},
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns a traceback; details stay in the server log.
        """
        logger.exception(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
            },
        )
        content = {"error": "Internal server error"}
        if config.debug:
            content["message"] = str(exc)
            content["exception_type"] = type(exc).__name__
        # This handler runs outside the middleware stack.
        headers = dict(SECURITY_HEADERS)
        headers.update(policy.cors_headers(request.headers.get("origin")))
        return JSONResponse(status_code=500, content=content, headers=headers)

    return app


# Create the application instance
app = create_app()
