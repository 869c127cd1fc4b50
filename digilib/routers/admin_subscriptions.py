"""Back-office subscription plans and subscriptions."""
from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from digilib.core.dependencies import SubscriptionServiceDep
from digilib.core.utils import clamp_page, utcnow
from digilib.schemas import (
    PaymentMethod,
    PlanIn,
    PlanOut,
    PlanType,
    PlanUpdate,
    SubscriptionCreate,
    SubscriptionOut,
    SubscriptionStatus,
    SubscriptionUpdate,
    page_payload,
)
from digilib.services.identity_service import Actor, require_admin

router = APIRouter(prefix="/admin", tags=["admin"])

staff_only = require_admin()


def _plan(plan) -> dict:
    return PlanOut.model_validate(plan).model_dump(mode="json")


def _subscription(entity) -> dict:
    return SubscriptionOut.from_entity(entity, utcnow()).model_dump(mode="json")


# -------------------------------------- plans --------------------------------------
@router.get("/plans", dependencies=[Depends(staff_only)])
def list_plans(
    subscriptions: SubscriptionServiceDep,
    search: str = "",
    type: Optional[PlanType] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(15),
):
    page, limit = clamp_page(page, limit)
    items, total = subscriptions.list_plans(search=search.strip(), type=type or "", page=page, limit=limit)
    return page_payload([_plan(item) for item in items], total, page, limit)


@router.get("/plans/{plan_id}", dependencies=[Depends(staff_only)])
def get_plan(plan_id: int, subscriptions: SubscriptionServiceDep):
    return {"success": True, "data": _plan(subscriptions.get_plan(plan_id))}


@router.post("/plans", status_code=201, dependencies=[Depends(staff_only)])
def create_plan(payload: PlanIn, subscriptions: SubscriptionServiceDep):
    return {"success": True, "data": _plan(subscriptions.create_plan(payload))}


@router.put("/plans/{plan_id}", dependencies=[Depends(staff_only)])
def update_plan(plan_id: int, payload: PlanUpdate, subscriptions: SubscriptionServiceDep):
    return {"success": True, "data": _plan(subscriptions.update_plan(plan_id, payload))}


@router.delete("/plans/{plan_id}", dependencies=[Depends(staff_only)])
def delete_plan(plan_id: int, subscriptions: SubscriptionServiceDep):
    subscriptions.delete_plan(plan_id)
    return {"success": True, "message": "Plan deleted"}


# -------------------------------------- subscriptions --------------------------------------
@router.get("/subscriptions", dependencies=[Depends(staff_only)])
def list_subscriptions(
    subscriptions: SubscriptionServiceDep,
    status: Optional[SubscriptionStatus] = None,
    owner: Optional[Literal["user", "institution"]] = None,
    payment_method: Optional[PaymentMethod] = None,
    user_id: Optional[int] = None,
    institution_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(15),
):
    page, limit = clamp_page(page, limit)
    items, total = subscriptions.list_subscriptions(
        status=status or "",
        owner_kind=owner or "",
        payment_method=payment_method or "",
        user_id=user_id,
        institution_id=institution_id,
        page=page,
        limit=limit,
    )
    return page_payload([_subscription(item) for item in items], total, page, limit)


@router.get("/subscriptions/{subscription_id}", dependencies=[Depends(staff_only)])
def get_subscription(subscription_id: int, subscriptions: SubscriptionServiceDep):
    return {"success": True, "data": _subscription(subscriptions.get_subscription(subscription_id))}


@router.post("/subscriptions", status_code=201)
def create_subscription(payload: SubscriptionCreate, subscriptions: SubscriptionServiceDep, actor: Actor = Depends(staff_only)):
    entity = subscriptions.create_subscription(payload, confirmed_by=actor.id)
    return {"success": True, "data": _subscription(entity)}


@router.put("/subscriptions/{subscription_id}")
def update_subscription(
    subscription_id: int,
    payload: SubscriptionUpdate,
    subscriptions: SubscriptionServiceDep,
    actor: Actor = Depends(staff_only),
):
    entity = subscriptions.update_subscription(subscription_id, payload, confirmed_by=actor.id)
    return {"success": True, "data": _subscription(entity)}


@router.delete("/subscriptions/{subscription_id}", dependencies=[Depends(staff_only)])
def delete_subscription(subscription_id: int, subscriptions: SubscriptionServiceDep):
    subscriptions.delete_subscription(subscription_id)
    return {"success": True, "message": "Subscription deleted"}
