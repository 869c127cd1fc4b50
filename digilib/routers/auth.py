from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from digilib.core.dependencies import AuthServiceDep
from digilib.core.rate_limiter import rate_limit_ip
from digilib.schemas import (
    AdminOut,
    AdminProfileUpdate,
    InstitutionOut,
    LoginRequest,
    RegisterRequest,
    UserOut,
)
from digilib.services.auth_service import LoginResult, token_expiry_iso
from digilib.services.identity_service import (
    REFRESH_COOKIE_NAME,
    Actor,
    clear_auth_cookies,
    require_actor,
    require_admin,
    set_auth_cookies,
)

router = APIRouter(prefix="/auth", tags=["auth"])

_PROFILE_SCHEMAS = {"user": UserOut, "institution": InstitutionOut, "admin": AdminOut}


def profile_payload(actor_type: str, account) -> dict:
    return _PROFILE_SCHEMAS[actor_type].model_validate(account).model_dump(mode="json")


def _session_body(result: LoginResult) -> dict:
    return {
        "success": True,
        "actor_type": result.actor.type,
        "role": result.actor.role,
        "data": profile_payload(result.actor.type, result.account),
        "access_token": result.tokens.access_token,
        **token_expiry_iso(result.tokens),
    }


def _login(actor_type: str, request: Request, response: Response, payload: LoginRequest, auth: AuthServiceDep) -> dict:
    rate_limit_ip(request, f"auth:login:{actor_type}", limit=10, window_seconds=300)
    result = auth.login(actor_type, payload.email, payload.password)
    set_auth_cookies(response, result.tokens)
    return _session_body(result)


@router.post("/login/user")
def login_user(request: Request, response: Response, payload: LoginRequest, auth: AuthServiceDep):
    return _login("user", request, response, payload, auth)


@router.post("/login/institution")
def login_institution(request: Request, response: Response, payload: LoginRequest, auth: AuthServiceDep):
    return _login("institution", request, response, payload, auth)


@router.post("/login/admin")
def login_admin(request: Request, response: Response, payload: LoginRequest, auth: AuthServiceDep):
    return _login("admin", request, response, payload, auth)


@router.post("/register", status_code=201)
def register(request: Request, payload: RegisterRequest, auth: AuthServiceDep):
    rate_limit_ip(request, "auth:register", limit=5, window_seconds=600)
    user = auth.register_user(payload)
    return {"success": True, "message": "Registration successful", "data": profile_payload("user", user)}


@router.post("/refresh")
def refresh(request: Request, response: Response, auth: AuthServiceDep):
    rate_limit_ip(request, "auth:refresh", limit=30, window_seconds=300)
    result = auth.refresh(request.cookies.get(REFRESH_COOKIE_NAME))
    set_auth_cookies(response, result.tokens)
    return _session_body(result)


@router.post("/logout")
def logout(request: Request, response: Response, auth: AuthServiceDep):
    auth.logout(request.cookies.get(REFRESH_COOKIE_NAME))
    clear_auth_cookies(response)
    return {"success": True, "message": "Logged out"}


@router.get("/me")
def me(auth: AuthServiceDep, actor: Actor = Depends(require_actor)):
    account = auth.current_profile(actor)
    return {
        "success": True,
        "actor_type": actor.type,
        "role": actor.role,
        "data": profile_payload(actor.type, account),
    }


@router.put("/admin/profile")
def update_admin_profile(payload: AdminProfileUpdate, auth: AuthServiceDep, actor: Actor = Depends(require_admin())):
    admin = auth.update_admin_profile(actor, payload)
    return {"success": True, "data": profile_payload("admin", admin)}
