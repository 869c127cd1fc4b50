from __future__ import annotations

import time

import jwt

from digilib.core.config import get_settings
from digilib.core.tokens import issue_token_pair
from digilib.services.identity_service import ACCESS_COOKIE_NAME, REFRESH_COOKIE_NAME, Actor, resolve_actor


def _token(**overrides) -> str:
    now = int(time.time())
    payload = {"sub": "7", "type": "user", "role": "user", "kind": "access", "iat": now, "exp": now + 60}
    payload.update(overrides)
    return jwt.encode(payload, get_settings().jwt_secret, algorithm="HS256")


def test_valid_access_token_resolves_actor():
    pair = issue_token_pair(7, "institution")
    assert resolve_actor(pair.access_token) == Actor(id=7, type="institution", role=None)


def test_missing_or_malformed_tokens_mean_no_actor():
    assert resolve_actor(None) is None
    assert resolve_actor("") is None
    assert resolve_actor("not-a-jwt") is None


def test_expired_token_is_rejected():
    past = int(time.time()) - 3600
    assert resolve_actor(_token(iat=past - 60, exp=past)) is None


def test_wrong_signature_is_rejected():
    forged = jwt.encode(
        {"sub": "7", "type": "admin", "role": "admin", "kind": "access", "iat": int(time.time()), "exp": int(time.time()) + 60},
        "another-secret-that-is-long-enough",
        algorithm="HS256",
    )
    assert resolve_actor(forged) is None


def test_refresh_token_cannot_be_used_as_access_token():
    pair = issue_token_pair(7, "user", "user")
    assert resolve_actor(pair.refresh_token) is None


def test_unknown_actor_type_is_rejected():
    assert resolve_actor(_token(type="robot")) is None


def test_expired_access_cookie_is_rejected_even_with_refresh_cookie(client, make_user):
    user = make_user()
    pair = issue_token_pair(user.id, "user", "user")
    past = int(time.time()) - 3600
    expired = _token(sub=str(user.id), iat=past - 60, exp=past)

    client.cookies.set(ACCESS_COOKIE_NAME, expired)
    client.cookies.set(REFRESH_COOKIE_NAME, pair.refresh_token)
    response = client.get("/auth/me")

    assert response.status_code == 401
    assert response.json()["error"]["kind"] == "unauthenticated"


def test_bearer_header_is_accepted(client, make_user):
    user = make_user()
    pair = issue_token_pair(user.id, "user", "user")
    response = client.get("/auth/me", headers={"Authorization": f"Bearer {pair.access_token}"})
    assert response.status_code == 200
    assert response.json()["data"]["email"] == "reader@example.com"
