"""Back-office accounts: users, institutions, admins and the dashboard."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from digilib.core.dependencies import AccountServiceDep
from digilib.core.utils import clamp_page
from digilib.schemas import (
    AdminCreate,
    AdminOut,
    AdminRole,
    AdminUpdate,
    DashboardOut,
    InstitutionCreate,
    InstitutionOut,
    InstitutionUpdate,
    UserCreate,
    UserOut,
    UserRole,
    UserUpdate,
    page_payload,
)
from digilib.services.identity_service import Actor, require_admin

router = APIRouter(prefix="/admin", tags=["admin"])

staff_only = require_admin()
admins_only = require_admin("admin")


def _user(user) -> dict:
    return UserOut.model_validate(user).model_dump(mode="json")


def _institution(institution, student_count: Optional[int] = None) -> dict:
    out = InstitutionOut.model_validate(institution)
    out.student_count = student_count
    return out.model_dump(mode="json")


def _admin(admin) -> dict:
    return AdminOut.model_validate(admin).model_dump(mode="json")


# -------------------------------------- dashboard --------------------------------------
@router.get("/dashboard", dependencies=[Depends(staff_only)])
def dashboard(accounts: AccountServiceDep):
    return {"success": True, "data": DashboardOut(**accounts.dashboard()).model_dump(mode="json")}


# -------------------------------------- users --------------------------------------
@router.get("/users", dependencies=[Depends(staff_only)])
def list_users(
    accounts: AccountServiceDep,
    search: str = "",
    role: Optional[UserRole] = None,
    institution_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(15),
):
    page, limit = clamp_page(page, limit)
    items, total = accounts.list_users(
        search=search.strip(), role=role or "", institution_id=institution_id, page=page, limit=limit
    )
    return page_payload([_user(item) for item in items], total, page, limit)


@router.get("/users/{user_id}", dependencies=[Depends(staff_only)])
def get_user(user_id: int, accounts: AccountServiceDep):
    return {"success": True, "data": _user(accounts.get_user(user_id))}


@router.post("/users", status_code=201, dependencies=[Depends(staff_only)])
def create_user(payload: UserCreate, accounts: AccountServiceDep):
    return {"success": True, "data": _user(accounts.create_user(payload))}


@router.put("/users/{user_id}", dependencies=[Depends(staff_only)])
def update_user(user_id: int, payload: UserUpdate, accounts: AccountServiceDep):
    return {"success": True, "data": _user(accounts.update_user(user_id, payload))}


@router.delete("/users/{user_id}", dependencies=[Depends(staff_only)])
def delete_user(user_id: int, accounts: AccountServiceDep):
    accounts.delete_user(user_id)
    return {"success": True, "message": "User deleted"}


# -------------------------------------- institutions --------------------------------------
@router.get("/institutions", dependencies=[Depends(staff_only)])
def list_institutions(accounts: AccountServiceDep, search: str = "", page: int = Query(1, ge=1), limit: int = Query(15)):
    page, limit = clamp_page(page, limit)
    rows, total = accounts.list_institutions(search=search.strip(), page=page, limit=limit)
    return page_payload([_institution(inst, count) for inst, count in rows], total, page, limit)


@router.get("/institutions/{institution_id}", dependencies=[Depends(staff_only)])
def get_institution(institution_id: int, accounts: AccountServiceDep):
    institution = accounts.get_institution(institution_id)
    students = accounts.list_students(institution_id)
    return {
        "success": True,
        "data": _institution(institution, len(students)),
        "students": [_user(student) for student in students],
    }


@router.post("/institutions", status_code=201, dependencies=[Depends(staff_only)])
def create_institution(payload: InstitutionCreate, accounts: AccountServiceDep):
    return {"success": True, "data": _institution(accounts.create_institution(payload), 0)}


@router.put("/institutions/{institution_id}", dependencies=[Depends(staff_only)])
def update_institution(institution_id: int, payload: InstitutionUpdate, accounts: AccountServiceDep):
    return {"success": True, "data": _institution(accounts.update_institution(institution_id, payload))}


@router.delete("/institutions/{institution_id}", dependencies=[Depends(staff_only)])
def delete_institution(institution_id: int, accounts: AccountServiceDep):
    accounts.delete_institution(institution_id)
    return {"success": True, "message": "Institution deleted"}


# -------------------------------------- admins --------------------------------------
@router.get("/admins", dependencies=[Depends(admins_only)])
def list_admins(
    accounts: AccountServiceDep,
    search: str = "",
    role: Optional[AdminRole] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(15),
):
    page, limit = clamp_page(page, limit)
    items, total = accounts.list_admins(search=search.strip(), role=role or "", page=page, limit=limit)
    return page_payload([_admin(item) for item in items], total, page, limit)


@router.post("/admins", status_code=201, dependencies=[Depends(admins_only)])
def create_admin(payload: AdminCreate, accounts: AccountServiceDep):
    return {"success": True, "data": _admin(accounts.create_admin(payload))}


@router.put("/admins/{admin_id}", dependencies=[Depends(admins_only)])
def update_admin(admin_id: int, payload: AdminUpdate, accounts: AccountServiceDep):
    return {"success": True, "data": _admin(accounts.update_admin(admin_id, payload))}


@router.delete("/admins/{admin_id}")
def delete_admin(admin_id: int, accounts: AccountServiceDep, actor: Actor = Depends(admins_only)):
    accounts.delete_admin(admin_id, actor)
    return {"success": True, "message": "Admin deleted"}
