"""
Subscription status evaluation and subscription administration.

Access to premium content is decided for a *billing owner*: an individual user
pays for themselves, a student is covered by their institution and an
institution by its own subscription. A subscription is active when its status
is ``active`` and ``start_at <= now <= end_at``; any such row grants access.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from digilib.core.errors import ApiError, ErrorKind, conflict, not_found, validation
from digilib.core.utils import as_utc, utcnow
from digilib.db.models import Resource, Subscription
from digilib.repositories.sql_repository import SQLRepository
from digilib.schemas import PlanIn, PlanUpdate, SubscriptionCreate, SubscriptionUpdate
from digilib.services.identity_service import Actor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BillingOwner:
    kind: str  # "user" | "institution"
    id: int


def subscription_end(start_at: datetime, duration_days: int) -> datetime:
    return as_utc(start_at) + timedelta(days=duration_days)


@dataclass
class SubscriptionService:
    repository: SQLRepository

    # -------------------------------------- evaluator --------------------------------------
    def billing_owner(self, actor: Optional[Actor]) -> Optional[BillingOwner]:
        if actor is None:
            return None
        if actor.type == "institution":
            if not self.repository.get_institution(actor.id):
                return None
            return BillingOwner("institution", actor.id)
        if actor.type == "user":
            user = self.repository.get_user(actor.id)
            if not user:
                return None
            if user.role == "student":
                # institution-level licensing covers every affiliated student
                if not user.institution_id:
                    return None
                return BillingOwner("institution", user.institution_id)
            return BillingOwner("user", user.id)
        return None

    def has_active_access(self, actor: Optional[Actor], now: Optional[datetime] = None) -> bool:
        owner = self.billing_owner(actor)
        if owner is None:
            return False
        return self.repository.has_active_subscription(owner.kind, owner.id, as_utc(now) or utcnow())

    def can_access(self, actor: Optional[Actor], resource: Resource, now: Optional[datetime] = None) -> bool:
        if (resource.paid or "free") == "free":
            return True
        return self.has_active_access(actor, now)

    def access_status(self, actor: Actor, now: Optional[datetime] = None) -> dict:
        moment = as_utc(now) or utcnow()
        owner = self.billing_owner(actor)
        current = None
        if owner is not None:
            current = self.repository.current_subscription(owner.kind, owner.id, moment)
        return {
            "actor_type": actor.type,
            "billing_owner_type": owner.kind if owner else None,
            "billing_owner_id": owner.id if owner else None,
            "has_access": current is not None,
            "subscription": current,
        }

    # -------------------------------------- plans --------------------------------------
    def list_plans(self, *, search: str = "", type: str = "", page: int = 1, limit: int = 15):
        return self.repository.list_plans(search=search, type=type, page=page, limit=limit)

    def get_plan(self, plan_id: int):
        plan = self.repository.get_plan(plan_id)
        if not plan:
            raise not_found("Subscription plan not found")
        return plan

    def create_plan(self, payload: PlanIn):
        return self.repository.create_plan(
            name=payload.name,
            type=payload.type,
            price=payload.price,
            duration_days=payload.duration_days,
            features=payload.features,
        )

    def update_plan(self, plan_id: int, payload: PlanUpdate):
        self.get_plan(plan_id)
        values = payload.model_dump(exclude_unset=True, exclude_none=True)
        return self.repository.update_plan(plan_id, **values)

    def delete_plan(self, plan_id: int) -> None:
        if not self.repository.delete_plan(plan_id):
            raise not_found("Subscription plan not found")

    # -------------------------------------- subscriptions --------------------------------------
    def get_subscription(self, subscription_id: int) -> Subscription:
        entity = self.repository.get_subscription(subscription_id)
        if not entity:
            raise not_found("Subscription not found")
        return entity

    def list_subscriptions(self, **filters):
        return self.repository.list_subscriptions(**filters)

    def _validate_owner(self, payload: SubscriptionCreate, plan_type: Optional[str]) -> BillingOwner:
        if payload.user_id is not None:
            user = self.repository.get_user(payload.user_id)
            if not user:
                raise not_found("User not found")
            if user.role != "user":
                raise validation("Students are covered by their institution and cannot hold a subscription")
            if plan_type and plan_type != "user":
                raise validation("Users can only subscribe to user plans")
            return BillingOwner("user", user.id)
        institution = self.repository.get_institution(payload.institution_id)
        if not institution:
            raise not_found("Institution not found")
        if plan_type and plan_type != "institution":
            raise validation("Institutions can only subscribe to institution plans")
        return BillingOwner("institution", institution.id)

    def create_subscription(self, payload: SubscriptionCreate, confirmed_by: Optional[int] = None) -> Subscription:
        plan = None
        if payload.plan_id is not None:
            plan = self.get_plan(payload.plan_id)
        owner = self._validate_owner(payload, plan.type if plan else None)
        duration = payload.duration_days or plan.duration_days
        price = payload.price if payload.price is not None else (plan.price if plan else 0)
        start_at = payload.start_at or utcnow()
        end_at = subscription_end(start_at, duration)
        if payload.status == "active" and self.repository.has_overlapping_active(owner.kind, owner.id, start_at, end_at):
            raise conflict("The owner already has an active subscription for this period")
        entity = self.repository.create_subscription(
            user_id=owner.id if owner.kind == "user" else None,
            institution_id=owner.id if owner.kind == "institution" else None,
            plan_id=plan.id if plan else None,
            price=price,
            duration_days=duration,
            start_at=start_at,
            end_at=end_at,
            payment_method=payload.payment_method,
            status=payload.status,
            confirmed_by=confirmed_by if payload.status == "active" else None,
        )
        logger.info(
            "Subscription %s created for %s %s (%s -> %s, status=%s)",
            entity.id, owner.kind, owner.id, start_at.isoformat(), end_at.isoformat(), payload.status,
        )
        return entity

    def update_subscription(self, subscription_id: int, payload: SubscriptionUpdate, confirmed_by: Optional[int] = None) -> Subscription:
        current = self.get_subscription(subscription_id)
        values = payload.model_dump(exclude_unset=True, exclude_none=True)
        start_at = values.get("start_at", as_utc(current.start_at))
        duration = values.get("duration_days", current.duration_days)
        if "start_at" in values or "duration_days" in values:
            values["end_at"] = subscription_end(start_at, duration)
        status = values.get("status", current.status)
        end_at = values.get("end_at", as_utc(current.end_at))
        owner_kind = "user" if current.user_id is not None else "institution"
        owner_id = current.user_id if current.user_id is not None else current.institution_id
        if status == "active" and self.repository.has_overlapping_active(
            owner_kind, owner_id, start_at, end_at, exclude_id=subscription_id
        ):
            raise conflict("The owner already has an active subscription for this period")
        if values.get("status") == "active" and current.status != "active":
            values["confirmed_by"] = confirmed_by
        return self.repository.update_subscription(subscription_id, **values)

    def delete_subscription(self, subscription_id: int) -> None:
        if not self.repository.delete_subscription(subscription_id):
            raise ApiError(ErrorKind.NOT_FOUND, "Subscription not found")
