"""
Catalog management: resources with their stored files, categories and authors.

Uploaded files are validated (extension, size, non-empty) before the object
store is touched. Every resource row points at no more than one live object:
replacing a file deletes the previous object once the new one is stored, and
deleting a resource removes its object before the row.
"""

from __future__ import annotations

import logging
import mimetypes
import os
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from digilib.core.config import get_settings
from digilib.core.errors import ApiError, ErrorKind, conflict, not_found, validation
from digilib.db.models import Resource
from digilib.repositories.sql_repository import SQLRepository
from digilib.schemas import ResourceCreate, ResourceUpdate
from digilib.services.storage_service import ObjectStorage, StorageError

logger = logging.getLogger(__name__)

KEY_PREFIX = "resources"


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename or "")[1].lower().lstrip(".")

    @property
    def size(self) -> int:
        return len(self.data)


def validate_upload(upload: Optional[UploadedFile], *, required: bool = True) -> Optional[UploadedFile]:
    """Reject anything that must never reach the object store."""
    if upload is None or not upload.filename:
        if required:
            raise validation("A file is required", fields={"file": "required"})
        return None
    settings = get_settings()
    allowed = settings.upload_allowed_formats
    if upload.extension not in allowed:
        raise validation(
            f"Unsupported file format. Allowed: {', '.join(allowed)}",
            fields={"file": "format"},
        )
    if upload.size == 0:
        raise validation("The uploaded file is empty", fields={"file": "empty"})
    if upload.size > settings.upload_max_bytes:
        limit_mb = settings.upload_max_bytes / (1024 * 1024)
        raise validation(f"File exceeds the {limit_mb:g} MB limit", fields={"file": "size"})
    return upload


def new_object_key(extension: str) -> str:
    return f"{KEY_PREFIX}/{uuid.uuid4().hex}.{extension}"


@dataclass
class ResourceService:
    repository: SQLRepository
    storage: ObjectStorage

    # -------------------------------------- helpers --------------------------------------
    def _check_references(self, category_id: Optional[int], author_ids: Optional[Sequence[int]]) -> None:
        if category_id is not None and not self.repository.get_category(category_id):
            raise validation("Category does not exist", fields={"category_id": "unknown"})
        if author_ids is not None:
            unique_ids = set(author_ids)
            if not unique_ids:
                raise validation("At least one author is required", fields={"author_ids": "required"})
            found = {author.id for author in self.repository.get_authors(unique_ids)}
            missing = sorted(unique_ids - found)
            if missing:
                raise validation(
                    f"Unknown author ids: {', '.join(str(i) for i in missing)}",
                    fields={"author_ids": "unknown"},
                )

    def _store(self, upload: UploadedFile) -> str:
        key = new_object_key(upload.extension)
        content_type = upload.content_type or mimetypes.guess_type(upload.filename)[0] or "application/octet-stream"
        try:
            self.storage.put(key, upload.data, content_type)
        except StorageError:
            logger.exception("Uploading %s failed", upload.filename)
            raise ApiError(ErrorKind.UPSTREAM_FAILURE, "File upload failed")
        return key

    def _discard(self, key: Optional[str]) -> None:
        if not key:
            return
        try:
            self.storage.delete(key)
        except StorageError:
            logger.exception("Deleting stored object %s failed", key)
            raise ApiError(ErrorKind.UPSTREAM_FAILURE, "File removal failed")

    @staticmethod
    def _file_values(upload: UploadedFile, key: str) -> dict:
        return {
            "file_key": key,
            "file_name": os.path.basename(upload.filename),
            "file_format": upload.extension,
            "file_size": upload.size,
        }

    # -------------------------------------- public catalog --------------------------------------
    def list_public(self, **filters):
        filters["status"] = "published"
        return self.repository.list_resources(**filters)

    def get_public(self, resource_id: int) -> Resource:
        resource = self.repository.get_resource(resource_id)
        if not resource or resource.status != "published":
            raise not_found("Resource not found")
        return resource

    # -------------------------------------- admin resources --------------------------------------
    def list_all(self, **filters):
        return self.repository.list_resources(**filters)

    def get(self, resource_id: int) -> Resource:
        resource = self.repository.get_resource(resource_id)
        if not resource:
            raise not_found("Resource not found")
        return resource

    def create(self, payload: ResourceCreate, upload: Optional[UploadedFile]) -> Resource:
        upload = validate_upload(upload, required=True)
        self._check_references(payload.category_id, payload.author_ids)
        key = self._store(upload)
        values = payload.model_dump(exclude={"author_ids"})
        values.update(self._file_values(upload, key))
        try:
            resource = self.repository.create_resource(values, payload.author_ids)
        except SQLAlchemyError:
            # the row never landed; do not leave the object orphaned
            self._discard(key)
            raise
        logger.info("Resource %s created (%s)", resource.id, key)
        return resource

    def update(self, resource_id: int, payload: ResourceUpdate, upload: Optional[UploadedFile] = None) -> Resource:
        current = self.get(resource_id)
        upload = validate_upload(upload, required=False)
        values = payload.model_dump(exclude_unset=True, exclude_none=True, exclude={"author_ids"})
        self._check_references(values.get("category_id"), payload.author_ids)
        old_key = None
        if upload is not None:
            new_key = self._store(upload)
            values.update(self._file_values(upload, new_key))
            old_key = current.file_key
        updated = self.repository.update_resource(resource_id, values, payload.author_ids)
        if old_key and old_key != updated.file_key:
            self._discard(old_key)
            logger.info("Resource %s file replaced (%s -> %s)", resource_id, old_key, updated.file_key)
        return updated

    def set_status(self, resource_id: int, status: str) -> Resource:
        self.get(resource_id)
        return self.repository.update_resource(resource_id, {"status": status})

    def set_paid(self, resource_id: int, paid: str) -> Resource:
        self.get(resource_id)
        return self.repository.update_resource(resource_id, {"paid": paid})

    def delete(self, resource_id: int) -> None:
        resource = self.get(resource_id)
        self._discard(resource.file_key)
        self.repository.delete_resource(resource_id)
        logger.info("Resource %s deleted", resource_id)

    # -------------------------------------- categories --------------------------------------
    def list_categories(self):
        return self.repository.list_categories()

    def create_category(self, name: str, description: Optional[str] = None):
        if self.repository.get_category_by_name(name):
            raise conflict("A category with this name already exists")
        return self.repository.create_category(name=name, description=description)

    def update_category(self, category_id: int, name: str, description: Optional[str] = None):
        if not self.repository.get_category(category_id):
            raise not_found("Category not found")
        existing = self.repository.get_category_by_name(name)
        if existing and existing.id != category_id:
            raise conflict("A category with this name already exists")
        return self.repository.update_category(category_id, name=name, description=description)

    def delete_category(self, category_id: int) -> None:
        if not self.repository.get_category(category_id):
            raise not_found("Category not found")
        if self.repository.category_in_use(category_id):
            raise conflict("Category is still used by resources")
        self.repository.delete_category(category_id)

    # -------------------------------------- authors --------------------------------------
    def list_authors(self, *, search: str = "", page: int = 1, limit: int = 15):
        return self.repository.list_authors(search=search, page=page, limit=limit)

    def create_author(self, name: str):
        return self.repository.create_author(name=name)

    def update_author(self, author_id: int, name: str):
        if not self.repository.get_author(author_id):
            raise not_found("Author not found")
        return self.repository.update_author(author_id, name=name)

    def delete_author(self, author_id: int) -> None:
        if not self.repository.delete_author(author_id):
            raise not_found("Author not found")
