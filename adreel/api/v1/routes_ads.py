from __future__ import annotations

from typing import Optional

import httpx
from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from adreel.api import deps
from adreel.core.auth import require_admin
from adreel.core.logging import get_logger
from adreel.db.models import Platform
from adreel.media import is_http_url
from adreel.services.ad_jobs import job_snapshot
from adreel.services.catalog_service import AdFilters, DownloadPolicyError, DuplicateAdError, ad_snapshot, plan_download
from adreel.services.metadata import MetadataResolver

from . import schemas


router = APIRouter(prefix="/ads", tags=["ads"])
logger = get_logger(component="ads_api")


async def _require_ad(catalog, ad_id: str):
    ad = await catalog.get_ad(ad_id)
    if ad is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="ad_not_found")
    return ad


@router.get("", response_model=schemas.AdListResponse, summary="Browse the catalog")
async def list_ads(
    catalog: deps.CatalogDependency,
    platform: Optional[Platform] = None,
    industry: Optional[str] = None,
    hook_type: Optional[str] = None,
    cta_type: Optional[str] = None,
    max_duration: Optional[int] = Query(default=None, ge=0),
    published: Optional[bool] = True,
    tag: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=24, ge=1, le=100),
) -> schemas.AdListResponse:
    filters = AdFilters(
        platform=platform,
        industry=industry,
        hook_type=hook_type,
        cta_type=cta_type,
        max_duration=max_duration,
        published=published,
        tag=tag,
    )
    items, total = await catalog.list_ads(filters, page=page, page_size=page_size)
    return schemas.AdListResponse(
        items=[schemas.AdResponse(**ad_snapshot(ad)) for ad in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("", response_model=schemas.AdResponse, status_code=status.HTTP_201_CREATED, summary="Add a video page by URL")
async def add_ad(
    payload: schemas.AdCreateRequest,
    catalog: deps.CatalogDependency,
    http_client: deps.HttpClientDependency,
    context: deps.AuthDependency,
    settings: deps.SettingsDependency,
) -> schemas.AdResponse:
    resolver = MetadataResolver(http_client, youtube_api_key=settings.secrets.youtube_api_key)
    try:
        ad = await catalog.add_from_url(
            payload.url,
            owner=context.user_id,
            resolver=resolver,
            title=payload.title,
            description=payload.description,
            thumbnail=payload.thumbnail,
            industry=payload.industry,
            hook_type=payload.hook_type,
            cta_type=payload.cta_type,
            tag_names=payload.tags,
        )
    except DuplicateAdError as exc:
        logger.info("add_ad_duplicate", ad_id=exc.ad_id)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="ad_exists") from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="invalid_url") from exc
    return schemas.AdResponse(**ad_snapshot(ad))


@router.get("/{ad_id}", response_model=schemas.AdResponse)
async def get_ad(ad_id: str, catalog: deps.CatalogDependency) -> schemas.AdResponse:
    ad = await _require_ad(catalog, ad_id)
    return schemas.AdResponse(**ad_snapshot(ad))


@router.get("/{ad_id}/download", summary="Stream a short-form video as an attachment")
async def download_ad(
    ad_id: str,
    catalog: deps.CatalogDependency,
    http_client: deps.HttpClientDependency,
) -> StreamingResponse:
    ad = await _require_ad(catalog, ad_id)
    try:
        plan = plan_download(ad)
    except DownloadPolicyError as exc:
        logger.info("download_refused", ad_id=ad_id, reason=exc.code)
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="policy_violation") from exc
    if not is_http_url(plan.source_url):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="unsupported_source")

    request = http_client.build_request("GET", plan.source_url)
    try:
        upstream = await http_client.send(request, stream=True)
    except httpx.HTTPError as exc:
        logger.warning("download_upstream_unreachable", ad_id=ad_id, error=str(exc))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="upstream_unreachable") from exc
    if upstream.status_code >= 400:
        await upstream.aclose()
        logger.warning("download_upstream_failed", ad_id=ad_id, status=upstream.status_code)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="upstream_failed")

    headers = {"Content-Disposition": f'attachment; filename="{plan.filename}"'}
    if upstream.headers.get("content-length") and not upstream.headers.get("content-encoding"):
        headers["Content-Length"] = upstream.headers["content-length"]
    return StreamingResponse(
        upstream.aiter_bytes(),
        media_type=upstream.headers.get("content-type", "video/mp4"),
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )


@router.patch("/{ad_id}/publish", response_model=schemas.AdResponse, summary="Toggle catalog visibility")
async def publish_ad(
    ad_id: str,
    payload: schemas.PublishRequest,
    catalog: deps.CatalogDependency,
    context: deps.AuthDependency,
) -> schemas.AdResponse:
    require_admin(context)
    ad = await catalog.set_published(ad_id, payload.published)
    if ad is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="ad_not_found")
    return schemas.AdResponse(**ad_snapshot(ad))


@router.post("/{ad_id}/jobs", response_model=schemas.AdJobResponse, status_code=status.HTTP_201_CREATED)
async def start_job(
    ad_id: str,
    payload: schemas.AdJobRequest,
    service: deps.AdJobDependency,
    context: deps.AuthDependency,
) -> schemas.AdJobResponse:
    try:
        job = await service.start(ad_id, context, job_type=payload.type, interval_min=payload.interval_min)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="ad_not_found") from exc
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden") from exc
    return schemas.AdJobResponse(**job_snapshot(job))


@router.delete("/{ad_id}/jobs", response_model=schemas.AdJobStopResponse)
async def stop_jobs(ad_id: str, service: deps.AdJobDependency, context: deps.AuthDependency) -> schemas.AdJobStopResponse:
    try:
        deactivated = await service.stop(ad_id, context)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="ad_not_found") from exc
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden") from exc
    return schemas.AdJobStopResponse(ad_id=ad_id, deactivated=deactivated)


@router.get("/{ad_id}/jobs", response_model=list[schemas.AdJobResponse])
async def list_jobs(ad_id: str, service: deps.AdJobDependency, context: deps.AuthDependency) -> list[schemas.AdJobResponse]:
    try:
        jobs = await service.list_jobs(ad_id, context)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="ad_not_found") from exc
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden") from exc
    return [schemas.AdJobResponse(**job_snapshot(job)) for job in jobs]


__all__ = ["router"]
