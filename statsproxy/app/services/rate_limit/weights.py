"""Request weight: endpoint cost plus a cheap bot-risk heuristic."""

import re

from statsproxy.app.models import ClientContext

MAX_WEIGHT = 5
MAX_RISK_CONTRIBUTION = 3
HEAVY_ENDPOINT_PREFIX = "/stats"

_BOT_UA = re.compile(r"curl|wget|python|httpclient|postman", re.IGNORECASE)


def route_weight(endpoint: str) -> int:
    """Heavier endpoints cost more."""
    if endpoint.startswith(HEAVY_ENDPOINT_PREFIX):
        return 2
    return 1


def bot_risk_score(client: ClientContext, min_user_agent_length: int = 8) -> int:
    """Score header completeness and known tool User-Agents (0..6).

    No fingerprinting: only headers every real browser sends are checked.
    """
    ua = client.user_agent
    score = 0
    if not ua or len(ua) < min_user_agent_length:
        score += 2
    if not client.accept_language:
        score += 1
    if not client.accept:
        score += 1
    if _BOT_UA.search(ua):
        score += 2
    return score


def request_weight(endpoint: str, client: ClientContext, min_user_agent_length: int = 8) -> int:
    """Cost of one request against both the burst and sustained budgets."""
    weight = route_weight(endpoint) if endpoint else 1
    risk = bot_risk_score(client, min_user_agent_length)
    return min(MAX_WEIGHT, weight + min(risk, MAX_RISK_CONTRIBUTION))
