"""
Signed download issuance for stored resource files.

A request moves from identity resolution to an access decision and then,
when authorised, to a presigned URL for exactly one private object.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from digilib.core.config import get_settings
from digilib.core.errors import ApiError, ErrorKind, not_found
from digilib.core.utils import utcnow
from digilib.db.models import Resource
from digilib.repositories.sql_repository import SQLRepository
from digilib.services.identity_service import Actor
from digilib.services.storage_service import ObjectStorage, StorageError
from digilib.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

DOWNLOAD_FAILED_MESSAGE = "Download failed"


@dataclass(frozen=True)
class DownloadTicket:
    resource_id: int
    url: str
    expires_at: datetime


def download_filename(resource: Resource) -> str:
    if resource.file_name:
        return resource.file_name
    ext = resource.file_format or (resource.file_key or "").rsplit(".", 1)[-1]
    return f"resource-{resource.id}.{ext}" if ext else f"resource-{resource.id}"


@dataclass
class DownloadService:
    repository: SQLRepository
    storage: ObjectStorage
    subscriptions: Optional[SubscriptionService] = None

    def __post_init__(self):
        if self.subscriptions is None:
            self.subscriptions = SubscriptionService(self.repository)

    def sign(self, resource: Resource, ttl_seconds: Optional[int] = None) -> DownloadTicket:
        """Presign the resource file without any access check or counting."""
        ttl = ttl_seconds or get_settings().download_url_ttl_seconds
        if not resource.file_key:
            raise ApiError(ErrorKind.UPSTREAM_FAILURE, DOWNLOAD_FAILED_MESSAGE)
        issued_at = utcnow()
        try:
            url = self.storage.signed_download_url(
                resource.file_key,
                filename=download_filename(resource),
                ttl_seconds=ttl,
            )
        except StorageError:
            logger.exception("Signing download for resource %s failed", resource.id)
            raise ApiError(ErrorKind.UPSTREAM_FAILURE, DOWNLOAD_FAILED_MESSAGE)
        return DownloadTicket(resource_id=resource.id, url=url, expires_at=issued_at + timedelta(seconds=ttl))

    def issue(self, resource_id: int, actor: Actor, now: Optional[datetime] = None) -> DownloadTicket:
        resource = self.repository.get_resource(resource_id)
        if not resource or (resource.status != "published" and not actor.is_admin):
            raise not_found("Resource not found")
        if not self.subscriptions.can_access(actor, resource, now):
            logger.info("Download of resource %s denied for %s %s", resource.id, actor.type, actor.id)
            raise ApiError(
                ErrorKind.NO_ACTIVE_SUBSCRIPTION,
                "An active subscription is required to download this resource",
            )
        ticket = self.sign(resource)
        self._count(resource.id, actor)
        return ticket

    def _count(self, resource_id: int, actor: Actor) -> None:
        try:
            if not self.repository.increment_download_count(resource_id):
                logger.warning("Download counter for resource %s was not updated", resource_id)
                return
            self.repository.record_download(resource_id, actor.type, actor.id)
        except SQLAlchemyError:
            logger.warning("Recording download of resource %s failed", resource_id, exc_info=True)
