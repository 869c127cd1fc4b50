from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from digilib.core.errors import ApiError, ErrorKind
from digilib.core.utils import as_utc
from digilib.schemas import PlanIn, SubscriptionCreate, SubscriptionUpdate
from digilib.services.identity_service import Actor
from digilib.services.subscription_service import BillingOwner, SubscriptionService


@pytest.fixture()
def service(repo):
    return SubscriptionService(repo)


def test_billing_owner_resolution(service, make_user, make_institution, make_admin):
    inst = make_institution()
    reader = make_user()
    student = make_user("student@uni.example", role="student", institution_id=inst.id)
    admin = make_admin()

    assert service.billing_owner(Actor(reader.id, "user", "user")) == BillingOwner("user", reader.id)
    assert service.billing_owner(Actor(student.id, "user", "student")) == BillingOwner("institution", inst.id)
    assert service.billing_owner(Actor(inst.id, "institution")) == BillingOwner("institution", inst.id)
    assert service.billing_owner(Actor(admin.id, "admin", "admin")) is None
    assert service.billing_owner(Actor(4242, "user", "user")) is None
    assert service.billing_owner(None) is None


def test_student_is_covered_by_institution_subscription(service, make_user, make_institution, make_subscription, make_resource):
    inst = make_institution()
    student = make_user("student@uni.example", role="student", institution_id=inst.id)
    premium = make_resource(paid="premium")
    actor = Actor(student.id, "user", "student")

    assert service.can_access(actor, premium) is False
    make_subscription(institution_id=inst.id)
    assert service.can_access(actor, premium) is True


def test_student_without_affiliation_fails_closed(service, make_user, make_resource):
    student = make_user("orphan@uni.example", role="student")
    assert service.can_access(Actor(student.id, "user", "student"), make_resource(paid="premium")) is False


def test_free_resources_skip_the_subscription_check(service, make_resource):
    free = make_resource()
    assert service.can_access(None, free) is True
    assert service.can_access(Actor(999, "user", "user"), free) is True


def test_access_follows_the_subscription_window(service, make_user, make_subscription, make_resource):
    user = make_user()
    premium = make_resource(paid="premium")
    start = datetime(2026, 5, 1, tzinfo=timezone.utc)
    make_subscription(user_id=user.id, start_at=start, days=10)
    actor = Actor(user.id, "user", "user")

    assert service.can_access(actor, premium, now=start - timedelta(minutes=1)) is False
    assert service.can_access(actor, premium, now=start) is True
    assert service.can_access(actor, premium, now=start + timedelta(days=10)) is True
    assert service.can_access(actor, premium, now=start + timedelta(days=10, minutes=1)) is False


def test_any_active_row_grants_access(service, make_user, make_subscription):
    user = make_user()
    now = datetime.now(timezone.utc)
    make_subscription(user_id=user.id, start_at=now - timedelta(days=90), days=30)
    make_subscription(user_id=user.id, start_at=now - timedelta(days=1), days=30)
    assert service.has_active_access(Actor(user.id, "user", "user"), now) is True


def test_create_subscription_from_plan(service, repo, make_institution, make_admin):
    inst = make_institution()
    admin = make_admin()
    plan = service.create_plan(PlanIn(name="Campus", type="institution", price="199.00", duration_days=365))
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)

    sub = service.create_subscription(
        SubscriptionCreate(institution_id=inst.id, plan_id=plan.id, start_at=start),
        confirmed_by=admin.id,
    )

    assert sub.duration_days == 365
    assert sub.plan.name == "Campus"
    assert sub.confirmed_by == admin.id
    assert as_utc(sub.end_at) == start + timedelta(days=365)


def test_plan_type_must_match_owner(service, make_user):
    user = make_user()
    plan = service.create_plan(PlanIn(name="Campus", type="institution", price="199.00", duration_days=365))
    with pytest.raises(ApiError) as excinfo:
        service.create_subscription(SubscriptionCreate(user_id=user.id, plan_id=plan.id))
    assert excinfo.value.kind is ErrorKind.VALIDATION


def test_students_cannot_hold_subscriptions(service, make_user, make_institution):
    inst = make_institution()
    student = make_user("student@uni.example", role="student", institution_id=inst.id)
    with pytest.raises(ApiError) as excinfo:
        service.create_subscription(SubscriptionCreate(user_id=student.id, duration_days=30))
    assert excinfo.value.kind is ErrorKind.VALIDATION


def test_overlapping_active_subscription_is_rejected(service, make_user):
    user = make_user()
    start = datetime(2026, 2, 1, tzinfo=timezone.utc)
    service.create_subscription(SubscriptionCreate(user_id=user.id, duration_days=30, start_at=start))

    with pytest.raises(ApiError) as excinfo:
        service.create_subscription(
            SubscriptionCreate(user_id=user.id, duration_days=30, start_at=start + timedelta(days=5))
        )
    assert excinfo.value.kind is ErrorKind.CONFLICT

    # a pending renewal may overlap; it only counts once confirmed
    pending = service.create_subscription(
        SubscriptionCreate(user_id=user.id, duration_days=30, start_at=start + timedelta(days=5), status="pending")
    )
    with pytest.raises(ApiError):
        service.update_subscription(pending.id, SubscriptionUpdate(status="active"))


def test_update_recomputes_end(service, make_user):
    user = make_user()
    start = datetime(2026, 2, 1, tzinfo=timezone.utc)
    sub = service.create_subscription(SubscriptionCreate(user_id=user.id, duration_days=30, start_at=start))
    updated = service.update_subscription(sub.id, SubscriptionUpdate(duration_days=60))
    assert as_utc(updated.end_at) == start + timedelta(days=60)


def test_unknown_subscription_is_not_found(service):
    with pytest.raises(ApiError) as excinfo:
        service.delete_subscription(12345)
    assert excinfo.value.kind is ErrorKind.NOT_FOUND
