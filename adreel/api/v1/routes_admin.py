from __future__ import annotations

import shutil
import subprocess
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from adreel.api import deps
from adreel.core.auth import require_admin
from adreel.core.config import Settings, get_settings

from .schemas import EnvCheckResponse, IngestRequest, TaskAcceptedResponse


router = APIRouter(prefix="/admin", tags=["admin"])


class DevTokenRequest(BaseModel):
    user_id: str = Field(..., examples=["user-123"])
    scopes: list[str] = Field(default_factory=list, examples=[["admin"]])


class DevTokenResponse(BaseModel):
    token: str


def _probe_binary(command: list[str]) -> bool:
    if shutil.which(command[0]) is None:
        return False
    try:
        subprocess.run(command, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=True)
        return True
    except (OSError, subprocess.CalledProcessError):
        return False


@router.get("/env-check", response_model=EnvCheckResponse, summary="Validate ffmpeg toolchain")
async def env_check(context: deps.AuthDependency) -> EnvCheckResponse:
    require_admin(context)
    return EnvCheckResponse(
        ffmpeg=_probe_binary(["ffmpeg", "-version"]),
        ffprobe=_probe_binary(["ffprobe", "-version"]),
    )


@router.post("/dev-token", response_model=DevTokenResponse, summary="Mint development JWT")
async def mint_dev_token(payload: DevTokenRequest, settings: Settings = Depends(get_settings)) -> DevTokenResponse:
    if settings.environment_lower not in {"development", "dev"}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="dev_token_disabled")

    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(hours=1)
    claims: dict[str, object] = {
        "sub": payload.user_id,
        "scopes": payload.scopes,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    if settings.jwt_issuer:
        claims["iss"] = settings.jwt_issuer
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience

    token = jwt.encode(claims, settings.secrets.jwt_secret, algorithm=settings.jwt_algorithm)
    return DevTokenResponse(token=token)


@router.post("/ingest", response_model=TaskAcceptedResponse, status_code=status.HTTP_202_ACCEPTED, summary="Run candidate discovery")
async def trigger_ingest(
    context: deps.AuthDependency,
    jobs: deps.JobBackendDependency,
    payload: IngestRequest | None = None,
) -> TaskAcceptedResponse:
    require_admin(context)
    payload = payload or IngestRequest()
    job_id = await jobs.enqueue("ingest", sources=payload.sources, max_items=payload.max_items)
    return TaskAcceptedResponse(task="ingest", job_id=job_id, status="queued" if job_id else "completed")


@router.post("/jobs/sweep", response_model=TaskAcceptedResponse, status_code=status.HTTP_202_ACCEPTED, summary="Run due repost/refresh jobs")
async def trigger_sweep(context: deps.AuthDependency, jobs: deps.JobBackendDependency) -> TaskAcceptedResponse:
    require_admin(context)
    job_id = await jobs.enqueue("sweep")
    return TaskAcceptedResponse(task="sweep", job_id=job_id, status="queued" if job_id else "completed")


__all__ = ["router"]
