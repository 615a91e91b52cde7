"""Normalize browser CSP violation reports.

Browsers post either the legacy ``application/csp-report`` shape
(``{"csp-report": {...}}``) or Reporting API batches
(``[{"type": "csp-violation", "body": {...}}]``). Both are reduced to the
same three fields for logging.
"""

import json
from typing import Any, Dict, List

UNKNOWN = "unknown"

_VIOLATED_KEYS = ("violated-directive", "effective-directive", "effectiveDirective")
_BLOCKED_KEYS = ("blocked-uri", "blockedURL", "blocked-url")
_DOCUMENT_KEYS = ("document-uri", "documentURL", "document-url")


def parse_report_body(raw: str) -> Any:
    """Parse a report body; non-JSON bodies are kept as ``{"raw": text}``."""
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return {"raw": raw}


def _first(report: Dict[str, Any], keys) -> str:
    for key in keys:
        value = report.get(key)
        if value:
            return str(value)
    return UNKNOWN


def normalize_report(report: Any) -> Dict[str, str]:
    if not isinstance(report, dict):
        report = {}
    return {
        "violatedDirective": _first(report, _VIOLATED_KEYS),
        "blockedUri": _first(report, _BLOCKED_KEYS),
        "documentUri": _first(report, _DOCUMENT_KEYS),
    }


def extract_reports(body: Any) -> List[Dict[str, str]]:
    """Return one normalized triple per report in ``body``."""
    if isinstance(body, list):
        return [
            normalize_report(entry.get("body") if isinstance(entry, dict) else None)
            for entry in body
        ]
    if isinstance(body, dict):
        report = body.get("csp-report") or body.get("report") or body
        return [normalize_report(report)]
    return [normalize_report(None)]
