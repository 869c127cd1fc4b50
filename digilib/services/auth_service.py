"""
Authentication and identity related use cases.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from digilib.core.errors import conflict, forbidden, not_found, unauthenticated, validation
from digilib.core.security import hash_password, needs_rehash, token_digest, verify_password
from digilib.core.tokens import REFRESH_KIND, TokenError, TokenPair, decode_token, issue_token_pair
from digilib.core.utils import as_utc, utcnow
from digilib.repositories.sql_repository import SQLRepository
from digilib.schemas import AdminProfileUpdate, RegisterRequest
from digilib.services.account_service import AccountService, normalize_email
from digilib.services.identity_service import ACTOR_TYPES, Actor

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


@dataclass
class LoginResult:
    actor: Actor
    account: Any
    tokens: TokenPair


@dataclass
class AuthService:
    """Handles login, registration, token refresh and logout flows."""

    repository: SQLRepository

    # -------------------------------------- helpers --------------------------------------
    def _lookup(self, actor_type: str, email: str):
        if actor_type == "user":
            return self.repository.get_user_by_email(email)
        if actor_type == "institution":
            return self.repository.get_institution_by_email(email)
        if actor_type == "admin":
            return self.repository.get_admin_by_email(email)
        return None

    def _account(self, actor_type: str, actor_id: int):
        if actor_type == "user":
            return self.repository.get_user(actor_id)
        if actor_type == "institution":
            return self.repository.get_institution(actor_id)
        if actor_type == "admin":
            return self.repository.get_admin(actor_id)
        return None

    def _rehash(self, actor_type: str, account_id: int, password: str) -> None:
        values = {"password_hash": hash_password(password)}
        if actor_type == "user":
            self.repository.update_user(account_id, **values)
        elif actor_type == "institution":
            self.repository.update_institution(account_id, **values)
        else:
            self.repository.update_admin(account_id, **values)
        logger.info("Upgraded password hash for %s %s", actor_type, account_id)

    @staticmethod
    def _role(actor_type: str, account) -> Optional[str]:
        return getattr(account, "role", None) if actor_type != "institution" else None

    def _issue(self, actor: Actor) -> TokenPair:
        pair = issue_token_pair(actor.id, actor.type, actor.role)
        self.repository.save_refresh_token(
            token_digest(pair.refresh_token),
            actor.type,
            actor.id,
            pair.refresh_expires_at,
        )
        return pair

    # -------------------------------------- login --------------------------------------
    def login(self, actor_type: str, email: str, password: str) -> LoginResult:
        if actor_type not in ACTOR_TYPES:
            raise not_found("Unknown account type")
        account = self._lookup(actor_type, normalize_email(email))
        if not account or not verify_password(password, account.password_hash):
            raise unauthenticated(INVALID_CREDENTIALS)
        if needs_rehash(account.password_hash):
            self._rehash(actor_type, account.id, password)
        actor = Actor(id=account.id, type=actor_type, role=self._role(actor_type, account))
        logger.info("Login succeeded for %s %s", actor_type, account.id)
        return LoginResult(actor=actor, account=account, tokens=self._issue(actor))

    def register_user(self, payload: RegisterRequest):
        accounts = AccountService(self.repository)
        if accounts.email_taken(payload.email):
            raise conflict("Email already registered")
        institution_id = None
        if payload.role == "student":
            if not self.repository.get_institution(payload.institution_id):
                raise validation("Institution does not exist", fields={"institution_id": "unknown"})
            institution_id = payload.institution_id
        user = self.repository.create_user(
            name=payload.name,
            email=normalize_email(payload.email),
            password_hash=hash_password(payload.password),
            role=payload.role,
            institution_id=institution_id,
        )
        logger.info("Registered %s %s", user.role, user.id)
        return user

    # -------------------------------------- refresh/logout --------------------------------------
    def refresh(self, refresh_token: Optional[str]) -> LoginResult:
        """Explicit exchange of a stored refresh token for a fresh pair (rotation)."""
        try:
            claims = decode_token(refresh_token, expected_kind=REFRESH_KIND)
        except TokenError as exc:
            raise unauthenticated("Session expired. Please log in again.") from exc
        digest = token_digest(refresh_token)
        stored = self.repository.get_valid_refresh_token(digest, utcnow())
        if not stored or stored.actor_type != claims.actor_type or stored.actor_id != claims.subject:
            raise unauthenticated("Session expired. Please log in again.")
        account = self._account(claims.actor_type, claims.subject)
        if not account:
            self.repository.delete_refresh_token(digest)
            raise unauthenticated("Account no longer exists")
        self.repository.delete_refresh_token(digest)
        actor = Actor(id=account.id, type=claims.actor_type, role=self._role(claims.actor_type, account))
        return LoginResult(actor=actor, account=account, tokens=self._issue(actor))

    def logout(self, refresh_token: Optional[str]) -> None:
        if refresh_token:
            self.repository.delete_refresh_token(token_digest(refresh_token))
        self.purge_expired_tokens()

    def purge_expired_tokens(self) -> int:
        removed = self.repository.purge_expired_refresh_tokens(utcnow())
        if removed:
            logger.info("Purged %d expired refresh tokens", removed)
        return removed

    # -------------------------------------- profile --------------------------------------
    def current_profile(self, actor: Actor):
        account = self._account(actor.type, actor.id)
        if not account:
            raise unauthenticated("Account no longer exists")
        return account

    def update_admin_profile(self, actor: Actor, payload: AdminProfileUpdate):
        if not actor.is_admin:
            raise forbidden("Admin privileges required")
        admin = self.repository.get_admin(actor.id)
        if not admin:
            raise unauthenticated("Account no longer exists")
        values = {}
        if payload.fullname:
            values["fullname"] = payload.fullname
        if payload.email and normalize_email(payload.email) != normalize_email(admin.email):
            if AccountService(self.repository).email_taken(payload.email, ignore=("admin", admin.id)):
                raise conflict("Email already registered")
            values["email"] = normalize_email(payload.email)
        if payload.new_password:
            if not verify_password(payload.current_password or "", admin.password_hash):
                raise validation("Current password is incorrect", fields={"current_password": "invalid"})
            values["password_hash"] = hash_password(payload.new_password)
        return self.repository.update_admin(admin.id, **values)


def token_expiry_iso(pair: TokenPair) -> dict:
    return {
        "access_expires_at": as_utc(pair.access_expires_at).isoformat(),
        "refresh_expires_at": as_utc(pair.refresh_expires_at).isoformat(),
    }
