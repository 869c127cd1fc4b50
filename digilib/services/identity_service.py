"""Identity resolution: who is calling, from a signed access token."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request, Response

from digilib.core.config import get_settings
from digilib.core.errors import forbidden, unauthenticated
from digilib.core.tokens import ACCESS_KIND, TokenError, TokenPair, decode_token

ACCESS_COOKIE_NAME = "access_token"
REFRESH_COOKIE_NAME = "refresh_token"
REFRESH_COOKIE_PATH = "/auth"

ACTOR_TYPES = ("user", "institution", "admin")


@dataclass(frozen=True)
class Actor:
    id: int
    type: str
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.type == "admin"


def resolve_actor(token: Optional[str]) -> Optional[Actor]:
    """Verify an access token and describe its actor; any failure means "no actor"."""
    try:
        claims = decode_token(token, expected_kind=ACCESS_KIND)
    except TokenError:
        return None
    if claims.actor_type not in ACTOR_TYPES:
        return None
    return Actor(id=claims.subject, type=claims.actor_type, role=claims.role)


def access_token_from_request(request: Request) -> Optional[str]:
    token = request.cookies.get(ACCESS_COOKIE_NAME)
    if token:
        return token
    header = request.headers.get("authorization") or ""
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


# -------------------------------------- dependencies --------------------------------------
def optional_actor(request: Request) -> Optional[Actor]:
    return resolve_actor(access_token_from_request(request))


def require_actor(actor: Optional[Actor] = Depends(optional_actor)) -> Actor:
    if actor is None:
        raise unauthenticated("Authentication required. Please log in.")
    return actor


def require_actor_type(*types: str):
    def dependency(actor: Actor = Depends(require_actor)) -> Actor:
        if actor.type not in types:
            raise forbidden("This account type cannot access this resource")
        return actor

    return dependency


def require_admin(*roles: str):
    """Admin-side guard; without roles any admin or staff member passes."""
    allowed = roles or ("admin", "staff")

    def dependency(actor: Actor = Depends(require_actor)) -> Actor:
        if not actor.is_admin or actor.role not in allowed:
            raise forbidden("Admin privileges required")
        return actor

    return dependency


# -------------------------------------- cookies --------------------------------------
def _cookie_options() -> dict:
    settings = get_settings()
    options = {
        "httponly": True,
        "secure": settings.is_prod,
        # cross-site front ends need SameSite=None, which browsers only accept with Secure
        "samesite": "none" if settings.is_prod else "lax",
    }
    if settings.cookie_domain:
        options["domain"] = settings.cookie_domain
    return options


def set_auth_cookies(response: Response, pair: TokenPair) -> None:
    settings = get_settings()
    options = _cookie_options()
    response.set_cookie(
        ACCESS_COOKIE_NAME,
        pair.access_token,
        max_age=settings.access_token_ttl_seconds,
        path="/",
        **options,
    )
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        pair.refresh_token,
        max_age=settings.refresh_token_ttl_seconds,
        path=REFRESH_COOKIE_PATH,
        **options,
    )


def clear_auth_cookies(response: Response) -> None:
    settings = get_settings()
    domain = settings.cookie_domain or None
    response.delete_cookie(ACCESS_COOKIE_NAME, path="/", domain=domain)
    response.delete_cookie(REFRESH_COOKIE_NAME, path=REFRESH_COOKIE_PATH, domain=domain)
