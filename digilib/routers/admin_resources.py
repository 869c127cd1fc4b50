"""Back-office resource management (multipart uploads)."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from digilib.core.config import get_settings
from digilib.core.dependencies import DownloadServiceDep, ResourceServiceDep
from digilib.core.utils import clamp_page
from digilib.schemas import (
    PaidPatch,
    PaidTier,
    ResourceCreate,
    ResourceOut,
    ResourceStatus,
    ResourceUpdate,
    StatusPatch,
    page_payload,
    parse_form,
)
from digilib.services.identity_service import require_admin
from digilib.services.resource_service import UploadedFile

router = APIRouter(prefix="/admin/resources", tags=["admin"], dependencies=[Depends(require_admin())])


def read_upload(file: Optional[UploadFile]) -> Optional[UploadedFile]:
    """Read at most one byte past the limit so oversized files are rejected without buffering them whole."""
    if file is None or not file.filename:
        return None
    limit = get_settings().upload_max_bytes
    data = file.file.read(limit + 1)
    return UploadedFile(filename=file.filename, data=data, content_type=file.content_type)


def _resource_body(resource) -> dict:
    return ResourceOut.from_entity(resource).model_dump(mode="json")


@router.get("")
def list_resources(
    resources: ResourceServiceDep,
    search: str = "",
    category_id: Optional[int] = None,
    type: str = "",
    language: str = "",
    year: Optional[int] = None,
    paid: Optional[PaidTier] = None,
    status: Optional[ResourceStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(15),
):
    page, limit = clamp_page(page, limit)
    items, total = resources.list_all(
        search=search.strip(),
        category_id=category_id,
        type=type,
        language=language,
        year=year,
        paid=paid or "",
        status=status or "",
        page=page,
        limit=limit,
    )
    return page_payload([_resource_body(item) for item in items], total, page, limit)


@router.get("/{resource_id}")
def get_resource(resource_id: int, resources: ResourceServiceDep, downloads: DownloadServiceDep):
    resource = resources.get(resource_id)
    body = {"success": True, "data": _resource_body(resource)}
    if resource.file_key:
        ticket = downloads.sign(resource)
        body["preview_url"] = ticket.url
        body["preview_expires_at"] = ticket.expires_at.isoformat()
    return body


@router.post("", status_code=201)
def create_resource(
    resources: ResourceServiceDep,
    title: str = Form(...),
    abstract: Optional[str] = Form(None),
    doi: Optional[str] = Form(None),
    type: Optional[str] = Form(None),
    language: Optional[str] = Form(None),
    publication_year: Optional[str] = Form(None),
    category_id: Optional[str] = Form(None),
    author_ids: Optional[str] = Form(None),
    paid: Optional[str] = Form(None),
    status: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
):
    payload = parse_form(
        ResourceCreate,
        {
            "title": title,
            "abstract": abstract,
            "doi": doi,
            "type": type,
            "language": language,
            "publication_year": publication_year,
            "category_id": category_id,
            "author_ids": author_ids,
            "paid": paid,
            "status": status,
        },
    )
    resource = resources.create(payload, read_upload(file))
    return {"success": True, "message": "Resource created", "data": _resource_body(resource)}


@router.put("/{resource_id}")
def update_resource(
    resource_id: int,
    resources: ResourceServiceDep,
    title: Optional[str] = Form(None),
    abstract: Optional[str] = Form(None),
    doi: Optional[str] = Form(None),
    type: Optional[str] = Form(None),
    language: Optional[str] = Form(None),
    publication_year: Optional[str] = Form(None),
    category_id: Optional[str] = Form(None),
    author_ids: Optional[str] = Form(None),
    paid: Optional[str] = Form(None),
    status: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
):
    payload = parse_form(
        ResourceUpdate,
        {
            "title": title,
            "abstract": abstract,
            "doi": doi,
            "type": type,
            "language": language,
            "publication_year": publication_year,
            "category_id": category_id,
            "author_ids": author_ids,
            "paid": paid,
            "status": status,
        },
    )
    resource = resources.update(resource_id, payload, read_upload(file))
    return {"success": True, "message": "Resource updated", "data": _resource_body(resource)}


@router.patch("/{resource_id}/status")
def patch_status(resource_id: int, payload: StatusPatch, resources: ResourceServiceDep):
    resource = resources.set_status(resource_id, payload.status)
    return {"success": True, "data": _resource_body(resource)}


@router.patch("/{resource_id}/paid")
def patch_paid(resource_id: int, payload: PaidPatch, resources: ResourceServiceDep):
    resource = resources.set_paid(resource_id, payload.paid)
    return {"success": True, "data": _resource_body(resource)}


@router.delete("/{resource_id}")
def delete_resource(resource_id: int, resources: ResourceServiceDep):
    resources.delete(resource_id)
    return {"success": True, "message": "Resource deleted"}
