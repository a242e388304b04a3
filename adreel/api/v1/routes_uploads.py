from __future__ import annotations

from fastapi import APIRouter, File, HTTPException, UploadFile, status

from adreel.api import deps
from adreel.services.intake_service import IntakeRejected, upload_snapshot

from . import schemas


router = APIRouter(prefix="/uploads", tags=["uploads"])

_REJECTION_STATUS = {
    "empty_upload": status.HTTP_400_BAD_REQUEST,
    "upload_too_large": status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    "invalid_url": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "source_unreachable": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def _rejected(exc: IntakeRejected) -> HTTPException:
    return HTTPException(status_code=_REJECTION_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST), detail=exc.code)


@router.post("", response_model=schemas.UploadResponse, status_code=status.HTTP_201_CREATED, summary="Submit a video file")
async def create_upload(
    service: deps.IntakeDependency,
    context: deps.AuthDependency,
    file: UploadFile = File(...),
) -> schemas.UploadResponse:
    limit = service.settings.max_upload_size_bytes
    # limit + 1 bytes is enough to detect an oversize body.
    payload = await file.read(limit + 1)
    await file.close()
    try:
        upload = await service.submit_upload(payload=payload, filename=file.filename, user_id=context.user_id)
    except IntakeRejected as exc:
        raise _rejected(exc) from exc
    return schemas.UploadResponse(**upload_snapshot(upload))


@router.post("/remote", response_model=schemas.RemoteUploadResponse, status_code=status.HTTP_201_CREATED, summary="Submit a video URL")
async def create_remote_upload(
    payload: schemas.RemoteUploadRequest,
    service: deps.IntakeDependency,
    context: deps.AuthDependency,
) -> schemas.RemoteUploadResponse:
    try:
        upload, warnings = await service.submit_remote(url=payload.url, filename=payload.filename, user_id=context.user_id)
    except IntakeRejected as exc:
        raise _rejected(exc) from exc
    return schemas.RemoteUploadResponse(upload=schemas.UploadResponse(**upload_snapshot(upload)), warnings=warnings)


@router.get("/{upload_id}", response_model=schemas.UploadResponse)
async def get_upload(upload_id: str, service: deps.IntakeDependency, context: deps.AuthDependency) -> schemas.UploadResponse:
    upload = await service.get_upload(upload_id)
    if upload is None or not (context.is_admin or upload.user_id in (None, context.user_id)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="upload_not_found")
    return schemas.UploadResponse(**upload_snapshot(upload))


__all__ = ["router"]
