"""Public catalog and the subscription-gated download endpoint."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from digilib.core.dependencies import DownloadServiceDep, ResourceServiceDep
from digilib.core.utils import clamp_page
from digilib.schemas import CategoryOut, DownloadTicketOut, PaidTier, ResourceOut, page_payload
from digilib.services.identity_service import Actor, require_actor

router = APIRouter(tags=["catalog"])


@router.get("/categories")
def list_categories(resources: ResourceServiceDep):
    rows = resources.list_categories()
    data = [
        CategoryOut(id=cat.id, name=cat.name, description=cat.description, resource_count=count).model_dump()
        for cat, count in rows
    ]
    return {"success": True, "data": data}


@router.get("/resources")
def list_resources(
    resources: ResourceServiceDep,
    search: str = "",
    category_id: Optional[int] = None,
    type: str = "",
    language: str = "",
    year: Optional[int] = None,
    paid: Optional[PaidTier] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(15),
):
    page, limit = clamp_page(page, limit)
    items, total = resources.list_public(
        search=search.strip(),
        category_id=category_id,
        type=type,
        language=language,
        year=year,
        paid=paid or "",
        page=page,
        limit=limit,
    )
    data = [ResourceOut.from_entity(item).model_dump(mode="json") for item in items]
    return page_payload(data, total, page, limit)


@router.get("/resources/{resource_id}")
def get_resource(resource_id: int, resources: ResourceServiceDep):
    resource = resources.get_public(resource_id)
    return {"success": True, "data": ResourceOut.from_entity(resource).model_dump(mode="json")}


@router.post("/resources/{resource_id}/download")
def download_resource(resource_id: int, downloads: DownloadServiceDep, actor: Actor = Depends(require_actor)):
    ticket = downloads.issue(resource_id, actor)
    out = DownloadTicketOut(resource_id=ticket.resource_id, url=ticket.url, expires_at=ticket.expires_at)
    return {"success": True, **out.model_dump(mode="json")}
