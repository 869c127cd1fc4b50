"""
Account administration for users, institutions and admins, plus the
institution portal and dashboard totals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from digilib.core.errors import conflict, forbidden, not_found, validation
from digilib.core.security import hash_password
from digilib.core.utils import utcnow
from digilib.repositories.sql_repository import SQLRepository
from digilib.schemas import (
    AdminCreate,
    AdminUpdate,
    InstitutionCreate,
    InstitutionUpdate,
    UserCreate,
    UserUpdate,
)
from digilib.services.identity_service import Actor

logger = logging.getLogger(__name__)


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


@dataclass
class AccountService:
    repository: SQLRepository

    # -------------------------------------- helpers --------------------------------------
    def email_taken(self, email: str, *, ignore: Optional[tuple[str, int]] = None) -> bool:
        """Emails are unique across every account table."""
        email = normalize_email(email)
        owners = (
            ("user", self.repository.get_user_by_email(email)),
            ("institution", self.repository.get_institution_by_email(email)),
            ("admin", self.repository.get_admin_by_email(email)),
        )
        for kind, entity in owners:
            if entity is None:
                continue
            if ignore and ignore == (kind, entity.id):
                continue
            return True
        return False

    def _check_affiliation(self, role: str, institution_id: Optional[int]) -> Optional[int]:
        if role == "student":
            if institution_id is None:
                raise validation("Students must belong to an institution", fields={"institution_id": "required"})
            if not self.repository.get_institution(institution_id):
                raise validation("Institution does not exist", fields={"institution_id": "unknown"})
            return institution_id
        return None

    # -------------------------------------- users --------------------------------------
    def list_users(self, **filters):
        return self.repository.list_users(**filters)

    def get_user(self, user_id: int):
        user = self.repository.get_user(user_id)
        if not user:
            raise not_found("User not found")
        return user

    def create_user(self, payload: UserCreate):
        if self.email_taken(payload.email):
            raise conflict("Email already registered")
        institution_id = self._check_affiliation(payload.role, payload.institution_id)
        user = self.repository.create_user(
            name=payload.name,
            email=normalize_email(payload.email),
            password_hash=hash_password(payload.password),
            role=payload.role,
            institution_id=institution_id,
        )
        logger.info("User %s created (role=%s)", user.id, user.role)
        return user

    def update_user(self, user_id: int, payload: UserUpdate):
        current = self.get_user(user_id)
        values = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "email" in values:
            if self.email_taken(values["email"], ignore=("user", user_id)):
                raise conflict("Email already registered")
            values["email"] = normalize_email(values["email"])
        if "password" in values:
            values["password_hash"] = hash_password(values.pop("password"))
        role = values.get("role", current.role)
        if "role" in values or "institution_id" in values:
            values["institution_id"] = self._check_affiliation(
                role, values.get("institution_id", current.institution_id)
            )
        return self.repository.update_user(user_id, **values)

    def delete_user(self, user_id: int) -> None:
        if not self.repository.delete_user(user_id):
            raise not_found("User not found")
        self.repository.delete_refresh_tokens_for("user", user_id)

    # -------------------------------------- institutions --------------------------------------
    def list_institutions(self, *, search: str = "", page: int = 1, limit: int = 15):
        return self.repository.list_institutions(search=search, page=page, limit=limit)

    def get_institution(self, institution_id: int):
        institution = self.repository.get_institution(institution_id)
        if not institution:
            raise not_found("Institution not found")
        return institution

    def create_institution(self, payload: InstitutionCreate):
        if self.email_taken(payload.email):
            raise conflict("Email already registered")
        return self.repository.create_institution(
            name=payload.name,
            email=normalize_email(payload.email),
            password_hash=hash_password(payload.password),
        )

    def update_institution(self, institution_id: int, payload: InstitutionUpdate):
        self.get_institution(institution_id)
        values = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "email" in values:
            if self.email_taken(values["email"], ignore=("institution", institution_id)):
                raise conflict("Email already registered")
            values["email"] = normalize_email(values["email"])
        if "password" in values:
            values["password_hash"] = hash_password(values.pop("password"))
        return self.repository.update_institution(institution_id, **values)

    def delete_institution(self, institution_id: int) -> None:
        if not self.repository.delete_institution(institution_id):
            raise not_found("Institution not found")
        self.repository.delete_refresh_tokens_for("institution", institution_id)
        logger.info("Institution %s deleted; students unaffiliated", institution_id)

    def list_students(self, institution_id: int):
        self.get_institution(institution_id)
        return self.repository.list_students(institution_id)

    # -------------------------------------- admins --------------------------------------
    def list_admins(self, *, search: str = "", role: str = "", page: int = 1, limit: int = 15):
        return self.repository.list_admins(search=search, role=role, page=page, limit=limit)

    def get_admin(self, admin_id: int):
        admin = self.repository.get_admin(admin_id)
        if not admin:
            raise not_found("Admin not found")
        return admin

    def create_admin(self, payload: AdminCreate):
        if self.email_taken(payload.email):
            raise conflict("Email already registered")
        return self.repository.create_admin(
            fullname=payload.fullname,
            email=normalize_email(payload.email),
            password_hash=hash_password(payload.password),
            role=payload.role,
        )

    def update_admin(self, admin_id: int, payload: AdminUpdate):
        self.get_admin(admin_id)
        values = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "email" in values:
            if self.email_taken(values["email"], ignore=("admin", admin_id)):
                raise conflict("Email already registered")
            values["email"] = normalize_email(values["email"])
        if "password" in values:
            values["password_hash"] = hash_password(values.pop("password"))
        return self.repository.update_admin(admin_id, **values)

    def delete_admin(self, admin_id: int, actor: Actor) -> None:
        if actor.id == admin_id:
            raise forbidden("You cannot delete your own account")
        if not self.repository.delete_admin(admin_id):
            raise not_found("Admin not found")
        self.repository.delete_refresh_tokens_for("admin", admin_id)

    # -------------------------------------- dashboard --------------------------------------
    def dashboard(self) -> dict:
        now = utcnow()
        return {
            "users": self.repository.count_users("user"),
            "students": self.repository.count_users("student"),
            "institutions": self.repository.count_institutions(),
            "resources": self.repository.count_resources(),
            "downloads": self.repository.count_downloads(),
            "active_subscriptions": self.repository.count_active_subscriptions(now),
            "active_revenue": self.repository.active_revenue(now),
        }
