"""Signed JWT credentials (access/refresh pairs)."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from .config import get_settings

ACCESS_KIND = "access"
REFRESH_KIND = "refresh"


class TokenError(Exception):
    """Raised when a token is missing, malformed, expired or mis-signed."""


@dataclass(frozen=True)
class TokenClaims:
    subject: int
    actor_type: str
    role: Optional[str]
    kind: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime


def _encode(subject: int, actor_type: str, role: Optional[str], kind: str, ttl: int) -> tuple[str, datetime]:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=max(1, ttl))
    payload: Dict[str, Any] = {
        "sub": str(subject),
        "type": actor_type,
        "role": role,
        "kind": kind,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
        # unique per token so two pairs issued in the same second never collide
        "jti": secrets.token_hex(8),
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, expires_at


def issue_token_pair(subject: int, actor_type: str, role: Optional[str] = None) -> TokenPair:
    settings = get_settings()
    access, access_exp = _encode(subject, actor_type, role, ACCESS_KIND, settings.access_token_ttl_seconds)
    refresh, refresh_exp = _encode(subject, actor_type, role, REFRESH_KIND, settings.refresh_token_ttl_seconds)
    return TokenPair(
        access_token=access,
        refresh_token=refresh,
        access_expires_at=access_exp,
        refresh_expires_at=refresh_exp,
    )


def decode_token(token: str | None, *, expected_kind: str) -> TokenClaims:
    if not token:
        raise TokenError("Token missing")
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenError("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenError("Invalid token") from exc
    if payload.get("kind") != expected_kind:
        raise TokenError("Unexpected token kind")
    try:
        subject = int(payload["sub"])
    except (TypeError, ValueError) as exc:
        raise TokenError("Invalid token subject") from exc
    actor_type = payload.get("type")
    if not isinstance(actor_type, str) or not actor_type:
        raise TokenError("Invalid token type")
    return TokenClaims(
        subject=subject,
        actor_type=actor_type,
        role=payload.get("role"),
        kind=expected_kind,
        expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
    )
