"""Reader and institution portal endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from digilib.core.dependencies import AccountServiceDep, SubscriptionServiceDep
from digilib.core.utils import utcnow
from digilib.schemas import AccessStatusOut, SubscriptionOut, UserOut
from digilib.services.identity_service import Actor, require_actor, require_actor_type

router = APIRouter(tags=["portal"])


@router.get("/me/subscription")
def my_subscription(subscriptions: SubscriptionServiceDep, actor: Actor = Depends(require_actor)):
    now = utcnow()
    status = subscriptions.access_status(actor, now)
    current = status.pop("subscription")
    out = AccessStatusOut(
        **status,
        subscription=SubscriptionOut.from_entity(current, now) if current is not None else None,
    )
    return {"success": True, "data": out.model_dump(mode="json")}


@router.get("/institution/students")
def institution_students(accounts: AccountServiceDep, actor: Actor = Depends(require_actor_type("institution"))):
    students = accounts.list_students(actor.id)
    data = [UserOut.model_validate(student).model_dump(mode="json") for student in students]
    return {"success": True, "data": data, "total": len(data)}
