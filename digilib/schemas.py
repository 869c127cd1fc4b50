"""Request/response schemas validated at the HTTP boundary."""
from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from digilib.core.errors import validation
from digilib.core.utils import as_utc, total_pages

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

UserRole = Literal["user", "student"]
AdminRole = Literal["admin", "staff"]
PlanType = Literal["user", "institution"]
ResourceType = Literal["Book", "Article", "Journal", "Thesis", "Report", "Other"]
PaidTier = Literal["free", "premium"]
ResourceStatus = Literal["published", "unpublished"]
SubscriptionStatus = Literal["pending", "active", "expired"]
PaymentMethod = Literal["manual", "api"]


def page_payload(items: list, total: int, page: int, limit: int) -> dict:
    return {
        "success": True,
        "data": items,
        "total": total,
        "totalPages": total_pages(total, limit),
        "page": page,
        "limit": limit,
    }


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class _Out(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# -------------------------------------- auth --------------------------------------
class LoginRequest(_Strict):
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=100)


class RegisterRequest(_Strict):
    name: str = Field(min_length=2, max_length=255)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=100)
    role: UserRole = "user"
    institution_id: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _student_needs_institution(self) -> "RegisterRequest":
        if self.role == "student" and self.institution_id is None:
            raise ValueError("Students must select an institution")
        if self.role == "user" and self.institution_id is not None:
            raise ValueError("Only students can be affiliated with an institution")
        return self


class AdminProfileUpdate(_Strict):
    fullname: Optional[str] = Field(default=None, min_length=2, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    current_password: Optional[str] = None
    new_password: Optional[str] = Field(default=None, min_length=6, max_length=100)


# -------------------------------------- accounts --------------------------------------
class UserOut(_Out):
    id: int
    name: str
    email: str
    role: str
    institution_id: Optional[int] = None
    created_at: Optional[datetime] = None


class InstitutionOut(_Out):
    id: int
    name: str
    email: str
    student_count: Optional[int] = None
    created_at: Optional[datetime] = None


class AdminOut(_Out):
    id: int
    fullname: str
    email: str
    role: str
    created_at: Optional[datetime] = None


class UserCreate(_Strict):
    name: str = Field(min_length=2, max_length=255)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=100)
    role: UserRole = "user"
    institution_id: Optional[int] = Field(default=None, gt=0)


class UserUpdate(_Strict):
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=6, max_length=100)
    role: Optional[UserRole] = None
    institution_id: Optional[int] = Field(default=None, gt=0)


class InstitutionCreate(_Strict):
    name: str = Field(min_length=2, max_length=255)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=100)


class InstitutionUpdate(_Strict):
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=6, max_length=100)


class AdminCreate(_Strict):
    fullname: str = Field(min_length=2, max_length=255)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=100)
    role: AdminRole = "staff"


class AdminUpdate(_Strict):
    fullname: Optional[str] = Field(default=None, min_length=2, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=6, max_length=100)
    role: Optional[AdminRole] = None


# -------------------------------------- catalog --------------------------------------
class CategoryIn(_Strict):
    name: str = Field(min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)


class CategoryOut(_Out):
    id: int
    name: str
    description: Optional[str] = None
    resource_count: int = 0


class AuthorIn(_Strict):
    name: str = Field(min_length=2, max_length=255)


class AuthorOut(_Out):
    id: int
    name: str
    resource_count: Optional[int] = None


class ResourceOut(_Out):
    id: int
    title: str
    abstract: Optional[str] = None
    doi: Optional[str] = None
    type: str
    language: Optional[str] = None
    publication_year: Optional[int] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    authors: List[AuthorOut] = []
    paid: str
    status: str
    file_name: Optional[str] = None
    file_format: Optional[str] = None
    file_size: Optional[int] = None
    download_count: int = 0
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, entity: Any) -> "ResourceOut":
        out = cls.model_validate(entity)
        category = getattr(entity, "category", None)
        out.category_name = category.name if category is not None else None
        return out


def _parse_author_ids(value: Any) -> Any:
    if value is None or isinstance(value, list):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.startswith("["):
            try:
                return json.loads(text)
            except ValueError as exc:
                raise ValueError("Author IDs must be a JSON array") from exc
        return [part.strip() for part in text.split(",") if part.strip()]
    return value


class ResourceCreate(_Strict):
    title: str = Field(min_length=2, max_length=255)
    abstract: Optional[str] = Field(default=None, max_length=5000)
    doi: Optional[str] = Field(default=None, max_length=255, pattern=r"^10\.\d{4,9}/[-._;()/:A-Za-z0-9]+$")
    type: ResourceType = "Book"
    language: Optional[str] = Field(default=None, max_length=32)
    publication_year: Optional[int] = Field(default=None, ge=1000, le=9999)
    category_id: int = Field(gt=0)
    author_ids: List[int] = Field(min_length=1)
    paid: PaidTier = "free"
    status: ResourceStatus = "published"

    normalize_author_ids = field_validator("author_ids", mode="before")(_parse_author_ids)


class ResourceUpdate(_Strict):
    title: Optional[str] = Field(default=None, min_length=2, max_length=255)
    abstract: Optional[str] = Field(default=None, max_length=5000)
    doi: Optional[str] = Field(default=None, max_length=255, pattern=r"^10\.\d{4,9}/[-._;()/:A-Za-z0-9]+$")
    type: Optional[ResourceType] = None
    language: Optional[str] = Field(default=None, max_length=32)
    publication_year: Optional[int] = Field(default=None, ge=1000, le=9999)
    category_id: Optional[int] = Field(default=None, gt=0)
    author_ids: Optional[List[int]] = None
    paid: Optional[PaidTier] = None
    status: Optional[ResourceStatus] = None

    normalize_author_ids = field_validator("author_ids", mode="before")(_parse_author_ids)


class StatusPatch(_Strict):
    status: ResourceStatus


class PaidPatch(_Strict):
    paid: PaidTier


class DownloadTicketOut(BaseModel):
    resource_id: int
    url: str
    expires_at: datetime


# -------------------------------------- subscriptions --------------------------------------
class PlanIn(_Strict):
    name: str = Field(min_length=2, max_length=100)
    type: PlanType
    price: Decimal = Field(ge=0, le=Decimal("999999.99"), decimal_places=2)
    duration_days: int = Field(ge=1, le=3650)
    features: List[str] = Field(default_factory=list, max_length=10)


class PlanUpdate(_Strict):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    type: Optional[PlanType] = None
    price: Optional[Decimal] = Field(default=None, ge=0, le=Decimal("999999.99"), decimal_places=2)
    duration_days: Optional[int] = Field(default=None, ge=1, le=3650)
    features: Optional[List[str]] = Field(default=None, max_length=10)


class PlanOut(_Out):
    id: int
    name: str
    type: str
    price: Decimal
    duration_days: int
    features: List[str] = []


class SubscriptionCreate(_Strict):
    user_id: Optional[int] = Field(default=None, gt=0)
    institution_id: Optional[int] = Field(default=None, gt=0)
    plan_id: Optional[int] = Field(default=None, gt=0)
    price: Optional[Decimal] = Field(default=None, ge=0, le=Decimal("999999.99"), decimal_places=2)
    duration_days: Optional[int] = Field(default=None, ge=1, le=3650)
    start_at: Optional[datetime] = None
    payment_method: PaymentMethod = "manual"
    status: SubscriptionStatus = "active"

    @model_validator(mode="after")
    def _check_owner_and_duration(self) -> "SubscriptionCreate":
        if (self.user_id is None) == (self.institution_id is None):
            raise ValueError("Either user_id or institution_id must be provided, but not both")
        if self.plan_id is None and self.duration_days is None:
            raise ValueError("A plan or an explicit duration_days is required")
        self.start_at = as_utc(self.start_at)
        return self


class SubscriptionUpdate(_Strict):
    price: Optional[Decimal] = Field(default=None, ge=0, le=Decimal("999999.99"), decimal_places=2)
    start_at: Optional[datetime] = None
    duration_days: Optional[int] = Field(default=None, ge=1, le=3650)
    payment_method: Optional[PaymentMethod] = None
    status: Optional[SubscriptionStatus] = None

    @model_validator(mode="after")
    def _normalize(self) -> "SubscriptionUpdate":
        self.start_at = as_utc(self.start_at)
        return self


class SubscriptionOut(_Out):
    id: int
    user_id: Optional[int] = None
    institution_id: Optional[int] = None
    plan_id: Optional[int] = None
    plan_name: Optional[str] = None
    price: Decimal
    duration_days: int
    start_at: datetime
    end_at: datetime
    payment_method: str
    status: str
    confirmed_by: Optional[int] = None
    is_active: bool = False

    @classmethod
    def from_entity(cls, entity: Any, now: datetime) -> "SubscriptionOut":
        out = cls.model_validate(entity)
        out.start_at = as_utc(out.start_at)
        out.end_at = as_utc(out.end_at)
        plan = getattr(entity, "plan", None)
        out.plan_name = plan.name if plan is not None else None
        out.is_active = out.status == "active" and out.start_at <= now <= out.end_at
        return out


class AccessStatusOut(BaseModel):
    actor_type: str
    billing_owner_type: Optional[str] = None
    billing_owner_id: Optional[int] = None
    has_access: bool
    subscription: Optional[SubscriptionOut] = None


class DashboardOut(BaseModel):
    users: int
    students: int
    institutions: int
    resources: int
    downloads: int
    active_subscriptions: int
    active_revenue: Decimal


def field_errors(exc: ValidationError) -> dict:
    fields = {}
    for item in exc.errors():
        name = ".".join(str(part) for part in item.get("loc", ()) if part not in ("body", "query", "path")) or "__root__"
        fields.setdefault(name, item.get("msg", "invalid"))
    return fields


def parse_form(model: type[BaseModel], values: dict) -> Any:
    """Validate multipart form fields with a schema; blank fields count as absent."""
    data = {key: value for key, value in values.items() if value is not None and value != ""}
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise validation("Invalid input", fields=field_errors(exc)) from exc
