from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adreel.core.auth import AuthContext, get_auth_context
from adreel.core.config import Settings, get_settings
from adreel.core.jobs import BaseJobBackend, get_job_backend
from adreel.core.storage import Storage
from adreel.services.ad_jobs import AdJobService
from adreel.services.catalog_service import CatalogService
from adreel.services.intake_service import IntakeService


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    if not isinstance(session_factory, async_sessionmaker):  # pragma: no cover - defensive
        raise RuntimeError("session_factory_not_configured")
    async with session_factory() as session:
        yield session


def get_storage(request: Request) -> Storage:
    storage: Storage = request.app.state.storage
    return storage


def get_http_client(request: Request) -> httpx.AsyncClient:
    client: httpx.AsyncClient = request.app.state.http_client
    return client


def get_app_settings() -> Settings:
    return get_settings()


def get_jobs() -> BaseJobBackend:
    return get_job_backend()


def get_catalog_service(session: AsyncSession = Depends(get_session)) -> CatalogService:
    return CatalogService(session)


def get_ad_job_service(session: AsyncSession = Depends(get_session)) -> AdJobService:
    return AdJobService(session)


def get_intake_service(
    session: AsyncSession = Depends(get_session),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> IntakeService:
    return IntakeService(settings, storage, session, http_client)


AuthDependency = Annotated[AuthContext, Depends(get_auth_context)]
CatalogDependency = Annotated[CatalogService, Depends(get_catalog_service)]
AdJobDependency = Annotated[AdJobService, Depends(get_ad_job_service)]
IntakeDependency = Annotated[IntakeService, Depends(get_intake_service)]
HttpClientDependency = Annotated[httpx.AsyncClient, Depends(get_http_client)]
SettingsDependency = Annotated[Settings, Depends(get_app_settings)]
JobBackendDependency = Annotated[BaseJobBackend, Depends(get_jobs)]


__all__ = [
    "get_session",
    "get_storage",
    "get_http_client",
    "get_app_settings",
    "get_jobs",
    "get_catalog_service",
    "get_ad_job_service",
    "get_intake_service",
    "AuthDependency",
    "CatalogDependency",
    "AdJobDependency",
    "IntakeDependency",
    "HttpClientDependency",
    "SettingsDependency",
    "JobBackendDependency",
]
