"""Request value types used by the proxy pipeline."""

from dataclasses import dataclass
from typing import Mapping, Optional


def client_ip_from_headers(headers: Mapping[str, str], peer_host: Optional[str] = None) -> str:
    """Return the first X-Forwarded-For hop, the peer host, or "unknown"."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return peer_host or "unknown"


@dataclass(frozen=True)
class ClientContext:
    """What the proxy knows about the caller of one request."""

    ip: str
    user_agent: str = ""
    uid: str = ""
    accept: str = ""
    accept_language: str = ""
    token: Optional[str] = None
    origin: Optional[str] = None

    @classmethod
    def from_headers(
        cls, headers: Mapping[str, str], peer_host: Optional[str] = None
    ) -> "ClientContext":
        """Build a context from (case-insensitive) request headers."""
        return cls(
            ip=client_ip_from_headers(headers, peer_host),
            user_agent=headers.get("user-agent", ""),
            uid=headers.get("x-uid", "").strip(),
            accept=headers.get("accept", ""),
            accept_language=headers.get("accept-language", ""),
            token=headers.get("x-ns-token") or None,
            origin=headers.get("origin"),
        )

    def rate_limit_key(self, token_id: Optional[str] = None) -> str:
        """Partition key for limiter state: IP, optional user id, optional jti."""
        key = f"ip:{self.ip}"
        if self.uid:
            key += f"|uid:{self.uid}"
        if token_id:
            key += f"|tok:{token_id}"
        return key
