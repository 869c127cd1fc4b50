"""Request-scoped dependencies: the process-wide Database/ObjectStorage and the services built on them."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from digilib.db.session import Database
from digilib.repositories.sql_repository import SQLRepository
from digilib.services.account_service import AccountService
from digilib.services.auth_service import AuthService
from digilib.services.download_service import DownloadService
from digilib.services.resource_service import ResourceService
from digilib.services.storage_service import ObjectStorage
from digilib.services.subscription_service import SubscriptionService


def get_database(request: Request) -> Database:
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise RuntimeError("Database is not initialised; was the app started through its lifespan?")
    return database


def get_storage(request: Request) -> ObjectStorage:
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        raise RuntimeError("Object storage is not initialised")
    return storage


def get_repository(database: Annotated[Database, Depends(get_database)]) -> SQLRepository:
    return SQLRepository(database)


RepositoryDep = Annotated[SQLRepository, Depends(get_repository)]
StorageDep = Annotated[ObjectStorage, Depends(get_storage)]


def get_auth_service(repository: RepositoryDep) -> AuthService:
    return AuthService(repository)


def get_account_service(repository: RepositoryDep) -> AccountService:
    return AccountService(repository)


def get_subscription_service(repository: RepositoryDep) -> SubscriptionService:
    return SubscriptionService(repository)


def get_resource_service(repository: RepositoryDep, storage: StorageDep) -> ResourceService:
    return ResourceService(repository, storage)


def get_download_service(repository: RepositoryDep, storage: StorageDep) -> DownloadService:
    return DownloadService(repository, storage)


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
AccountServiceDep = Annotated[AccountService, Depends(get_account_service)]
SubscriptionServiceDep = Annotated[SubscriptionService, Depends(get_subscription_service)]
ResourceServiceDep = Annotated[ResourceService, Depends(get_resource_service)]
DownloadServiceDep = Annotated[DownloadService, Depends(get_download_service)]
