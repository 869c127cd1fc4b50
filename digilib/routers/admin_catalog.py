"""Back-office categories and authors."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from digilib.core.dependencies import ResourceServiceDep
from digilib.core.utils import clamp_page
from digilib.schemas import AuthorIn, AuthorOut, CategoryIn, CategoryOut, page_payload
from digilib.services.identity_service import require_admin

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin())])


# -------------------------------------- categories --------------------------------------
@router.get("/categories")
def list_categories(resources: ResourceServiceDep):
    data = [
        CategoryOut(id=cat.id, name=cat.name, description=cat.description, resource_count=count).model_dump()
        for cat, count in resources.list_categories()
    ]
    return {"success": True, "data": data}


@router.post("/categories", status_code=201)
def create_category(payload: CategoryIn, resources: ResourceServiceDep):
    category = resources.create_category(payload.name, payload.description)
    return {"success": True, "data": CategoryOut.model_validate(category).model_dump()}


@router.put("/categories/{category_id}")
def update_category(category_id: int, payload: CategoryIn, resources: ResourceServiceDep):
    category = resources.update_category(category_id, payload.name, payload.description)
    return {"success": True, "data": CategoryOut.model_validate(category).model_dump()}


@router.delete("/categories/{category_id}")
def delete_category(category_id: int, resources: ResourceServiceDep):
    resources.delete_category(category_id)
    return {"success": True, "message": "Category deleted"}


# -------------------------------------- authors --------------------------------------
@router.get("/authors")
def list_authors(resources: ResourceServiceDep, search: str = "", page: int = Query(1, ge=1), limit: int = Query(15)):
    page, limit = clamp_page(page, limit)
    rows, total = resources.list_authors(search=search.strip(), page=page, limit=limit)
    data = [AuthorOut(id=author.id, name=author.name, resource_count=count).model_dump() for author, count in rows]
    return page_payload(data, total, page, limit)


@router.post("/authors", status_code=201)
def create_author(payload: AuthorIn, resources: ResourceServiceDep):
    author = resources.create_author(payload.name)
    return {"success": True, "data": AuthorOut.model_validate(author).model_dump()}


@router.put("/authors/{author_id}")
def update_author(author_id: int, payload: AuthorIn, resources: ResourceServiceDep):
    author = resources.update_author(author_id, payload.name)
    return {"success": True, "data": AuthorOut.model_validate(author).model_dump()}


@router.delete("/authors/{author_id}")
def delete_author(author_id: int, resources: ResourceServiceDep):
    resources.delete_author(author_id)
    return {"success": True, "message": "Author deleted"}
