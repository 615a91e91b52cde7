"""Signed challenge tokens.

A token proves the caller went through ``/api/proxy?init=1`` and is still
presenting the same IP and User-Agent. It is not a credential: nothing is
stored server side and verification depends only on the signature and the
payload fields.

Tokens are compact HS256 JWTs with ``typ: NSJWT``. ``iat`` and ``exp`` are
epoch milliseconds, so PyJWT's own time checks are disabled and expiry is
compared here.
"""

import hashlib
import hmac
import time
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import jwt
from jwt.utils import base64url_encode

TOKEN_ALGORITHM = "HS256"
TOKEN_TYPE = "NSJWT"
TOKEN_VERSION = 1
UA_HASH_LENGTH = 16

_DECODE_OPTIONS = {"verify_exp": False, "verify_iat": False, "verify_nbf": False}


def hmac_sha256(secret: str, message: str) -> str:
    """Return the base64url HMAC-SHA256 of ``message`` keyed with ``secret``."""
    digest = hmac.new(
        secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
    ).digest()
    return base64url_encode(digest).decode("ascii")


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class TokenClaims:
    """Verified token payload."""

    jti: str
    ip: str
    ua_hash: str
    issued_at: int
    expires_at: int
    version: int = TOKEN_VERSION


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_in_ms: int


class TokenService:
    """Issues and verifies HMAC signed, time boxed tokens.

    Args:
        secret: Operator provided signing secret
        ttl_seconds: Token lifetime
    """

    def __init__(self, secret: str, ttl_seconds: int = 600):
        self._secret = secret
        self.ttl_ms = ttl_seconds * 1000

    def ua_hash(self, user_agent: str) -> str:
        return hmac_sha256(self._secret, user_agent)[:UA_HASH_LENGTH]

    def issue(self, ip: str, user_agent: str, now_ms: Optional[int] = None) -> IssuedToken:
        """Create a token bound to ``ip`` and ``user_agent``."""
        issued_at = _now_ms() if now_ms is None else now_ms
        payload = {
            "v": TOKEN_VERSION,
            "jti": str(uuid.uuid4()),
            "ip": ip,
            "uaHash": self.ua_hash(user_agent),
            "iat": issued_at,
            "exp": issued_at + self.ttl_ms,
        }
        token = jwt.encode(
            payload, self._secret, algorithm=TOKEN_ALGORITHM, headers={"typ": TOKEN_TYPE}
        )
        return IssuedToken(token=token, expires_in_ms=self.ttl_ms)

    def _decode_verified(self, token: str) -> Optional[dict[str, Any]]:
        """Return the payload if the signature matches, else None."""
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[TOKEN_ALGORITHM],
                options=_DECODE_OPTIONS,
            )
        except jwt.PyJWTError:
            return None

    def verify(
        self,
        token: Optional[str],
        ip: str,
        user_agent: str,
        now_ms: Optional[int] = None,
    ) -> Optional[TokenClaims]:
        """Verify a presented token against the caller's IP and User-Agent.

        Returns the claims when every check passes. Any failure, whatever the
        cause, returns None so the caller falls back to the unauthenticated
        tier instead of erroring.
        """
        if not token:
            return None
        payload = self._decode_verified(token)
        if payload is None:
            return None

        now = _now_ms() if now_ms is None else now_ms
        exp = payload.get("exp")
        jti = payload.get("jti")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            return None
        if now > exp:
            return None
        if payload.get("ip") != ip:
            return None
        if payload.get("uaHash") != self.ua_hash(user_agent):
            return None
        if not isinstance(jti, str):
            return None

        iat = payload.get("iat")
        return TokenClaims(
            jti=jti,
            ip=ip,
            ua_hash=payload["uaHash"],
            issued_at=int(iat) if isinstance(iat, (int, float)) else 0,
            expires_at=int(exp),
            version=payload.get("v", TOKEN_VERSION),
        )
