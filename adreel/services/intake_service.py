from __future__ import annotations

import asyncio
import re
import time
from pathlib import Path
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from adreel.core.config import Settings
from adreel.core.logging import get_logger
from adreel.core.storage import Storage
from adreel.db.models import AdUpload
from adreel.media import filename_from_url, is_http_url

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")
VIDEO_CONTENT_PREFIXES = ("video/",)
VIDEO_CONTENT_TYPES = {"application/octet-stream", "application/mp4", "binary/octet-stream"}


class IntakeRejected(ValueError):
    """Submission refused before an intake record was written."""

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or code)
        self.code = code


def timestamped_key(name: str, *, prefix: str = "") -> str:
    """``<prefix><unix-ms>-<sanitised name>``, the collision-avoidance scheme for object paths."""
    clean = _UNSAFE_KEY_CHARS.sub("_", Path(name).name) or "upload.bin"
    return f"{prefix}{int(time.time() * 1000)}-{clean}"


def looks_like_video(content_type: str | None) -> bool:
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type.startswith(VIDEO_CONTENT_PREFIXES) or media_type in VIDEO_CONTENT_TYPES


def upload_snapshot(upload: AdUpload) -> dict[str, Any]:
    return {
        "id": upload.id,
        "storage_path": upload.storage_path,
        "filename": upload.filename,
        "user_id": upload.user_id,
        "remote": upload.remote,
        "processed": upload.processed,
        "duration_sec": upload.duration_sec,
        "error": upload.error,
        "processed_at": upload.processed_at,
        "created_at": upload.created_at,
    }


class IntakeService:
    """Creates intake records from direct uploads and remote URLs."""

    def __init__(self, settings: Settings, storage: Storage, session: AsyncSession, http_client: httpx.AsyncClient):
        self.settings = settings
        self.storage = storage
        self.session = session
        self.http_client = http_client
        self.logger = get_logger(component="intake_service")

    async def submit_upload(self, *, payload: bytes, filename: str | None, user_id: str | None) -> AdUpload:
        if not payload:
            raise IntakeRejected("empty_upload")
        if len(payload) > self.settings.max_upload_size_bytes:
            raise IntakeRejected("upload_too_large")
        key = timestamped_key(filename or "upload.mp4")
        await asyncio.to_thread(self.storage.upload, self.settings.raw_bucket, key, payload)

        upload = AdUpload(storage_path=key, filename=filename, user_id=user_id, remote=False, processed=False)
        self.session.add(upload)
        await self.session.commit()
        self.logger.info("intake_upload_created", upload_id=upload.id, storage_path=key, size_bytes=len(payload))
        return upload

    async def submit_remote(self, *, url: str, filename: str | None, user_id: str | None) -> tuple[AdUpload, list[str]]:
        url = url.strip()
        if not is_http_url(url):
            raise IntakeRejected("invalid_url", "Only http(s) URLs can be submitted")

        warnings: list[str] = []
        content_type = await self._sanity_check(url)
        if not looks_like_video(content_type):
            warnings.append(f"content_type_not_video:{content_type or 'unknown'}")
            self.logger.warning("intake_remote_content_type", url=url, content_type=content_type)

        upload = AdUpload(
            storage_path=url,
            filename=filename or filename_from_url(url, default="") or None,
            user_id=user_id,
            remote=True,
            processed=False,
        )
        self.session.add(upload)
        await self.session.commit()
        self.logger.info("intake_remote_created", upload_id=upload.id, url=url)
        return upload, warnings

    async def _sanity_check(self, url: str) -> str | None:
        try:
            response = await self.http_client.head(url)
            if response.status_code in {405, 501}:
                async with self.http_client.stream("GET", url, headers={"Range": "bytes=0-0"}) as streamed:
                    response = streamed
        except httpx.HTTPError as exc:
            self.logger.warning("intake_remote_unreachable", url=url, error=str(exc))
            raise IntakeRejected("source_unreachable", str(exc)) from exc
        if response.status_code >= 400:
            raise IntakeRejected("source_unreachable", f"HEAD returned {response.status_code}")
        return response.headers.get("content-type")

    async def get_upload(self, upload_id: str) -> AdUpload | None:
        return await self.session.get(AdUpload, upload_id)

    async def requeue(self, upload_id: str) -> AdUpload | None:
        """Clear a terminal error so the worker picks the record up again."""
        upload = await self.session.get(AdUpload, upload_id)
        if upload is None or upload.processed:
            return upload
        upload.error = None
        upload.processed_at = None
        upload.claimed_at = None
        upload.claimed_by = None
        await self.session.commit()
        self.logger.info("intake_requeued", upload_id=upload_id)
        return upload


__all__ = [
    "IntakeRejected",
    "IntakeService",
    "looks_like_video",
    "timestamped_key",
    "upload_snapshot",
]
