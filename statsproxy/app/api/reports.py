"""CSP report receiver and public front-end config."""

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from statsproxy.app.api.proxy import get_settings
from statsproxy.app.core.config import Settings
from statsproxy.app.core.logging import get_logger
from statsproxy.app.services.csp import extract_reports, parse_report_body

router = APIRouter()
logger = get_logger(__name__)


@router.post("/api/csp-report{suffix:path}", response_model=None)
async def csp_report(request: Request) -> Response:
    """Log browser CSP violations. Always answers 204."""
    raw = (await request.body()).decode("utf-8", errors="replace")
    for report in extract_reports(parse_report_body(raw)):
        logger.warning(
            "CSP violation: %s blocked %s on %s",
            report["violatedDirective"],
            report["blockedUri"],
            report["documentUri"],
            extra={"csp": report},
        )
    return Response(status_code=204)


@router.get("/api/public-config", response_model=None)
async def public_config(config: Settings = Depends(get_settings)) -> JSONResponse:
    """Expose the non-secret telemetry config the front end boots with."""
    return JSONResponse(
        content={
            "sentryDsn": config.sentry_dsn,
            "environment": config.environment,
            "release": config.release,
            "tracesSampleRate": config.traces_sample_rate,
        },
        headers={"Cache-Control": "no-store, max-age=0"},
    )
