from __future__ import annotations

import asyncio
import os
import shutil
import socket
import tempfile
import time
from datetime import timedelta
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import httpx
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adreel.core.config import Settings
from adreel.core.logging import get_logger
from adreel.core.storage import Storage
from adreel.db.models import Ad, AdUpload, Platform, SourceType, utcnow
from adreel.media import FrameBounds, download_to, filename_from_url, probe_duration, render_thumbnail, transcode
from adreel.services.intake_service import timestamped_key

Prober = Callable[[Path], Optional[int]]
Transcoder = Callable[..., Path]
Thumbnailer = Callable[..., Tuple[int, int]]

ERROR_TOO_LONG = "Duration exceeds {limit}s"
ERROR_NO_DURATION = "Duration unavailable"


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class UploadProcessor:
    """Polls the intake table and turns each pending record into a published catalog entry.

    A record ends in exactly one terminal state: ``processed`` with a new ``Ad``,
    or unprocessed with ``error`` and ``processed_at`` set. Errors on one record
    never stop the batch.
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        storage: Storage,
        http_client: httpx.AsyncClient,
        *,
        prober: Prober = probe_duration,
        transcoder: Transcoder = transcode,
        thumbnailer: Thumbnailer = render_thumbnail,
        worker_id: str | None = None,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.storage = storage
        self.http_client = http_client
        self.prober = prober
        self.transcoder = transcoder
        self.thumbnailer = thumbnailer
        self.worker_id = worker_id or default_worker_id()
        self.logger = get_logger(component="upload_processor", worker_id=self.worker_id)

    def _claimable(self):
        """Unclaimed, or claimed longer ago than the TTL by a worker that never finished."""
        cutoff = utcnow() - timedelta(seconds=self.settings.worker_claim_ttl_s)
        return or_(AdUpload.claimed_at.is_(None), AdUpload.claimed_at < cutoff)

    async def pending_ids(self) -> List[str]:
        stmt = select(AdUpload.id).where(AdUpload.processed.is_(False))
        if not self.settings.retry_errored_uploads:
            stmt = stmt.where(AdUpload.error.is_(None))
        if self.settings.worker_claim_enabled:
            stmt = stmt.where(self._claimable())
        stmt = stmt.order_by(AdUpload.created_at, AdUpload.id).limit(self.settings.worker_batch_size)
        async with self.session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def claim(self, upload_id: str) -> bool:
        """Conditionally stamp the claim columns; only one worker can win the update."""
        stmt = (
            update(AdUpload)
            .where(
                AdUpload.id == upload_id,
                self._claimable(),
                AdUpload.processed.is_(False),
            )
            .values(claimed_at=utcnow(), claimed_by=self.worker_id)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            won = result.rowcount == 1
            await session.commit()
        return won

    async def poll_once(self) -> int:
        handled = 0
        for upload_id in await self.pending_ids():
            if self.settings.worker_claim_enabled and not await self.claim(upload_id):
                self.logger.info("upload_claim_lost", upload_id=upload_id)
                continue
            await self.process(upload_id)
            handled += 1
        if handled:
            self.logger.info("upload_poll_finished", handled=handled)
        return handled

    async def run_forever(self, *, stop: asyncio.Event | None = None) -> None:
        stop = stop or asyncio.Event()
        self.logger.info("upload_processor_started", interval_s=self.settings.worker_poll_interval_s)
        while not stop.is_set():
            try:
                await self.poll_once()
            except Exception:
                self.logger.exception("upload_poll_failed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.settings.worker_poll_interval_s)
            except asyncio.TimeoutError:
                pass
        self.logger.info("upload_processor_stopped")

    async def process(self, upload_id: str) -> Optional[Ad]:
        logger = self.logger.bind(upload_id=upload_id)
        workdir = Path(tempfile.mkdtemp(prefix="adreel-upload-"))
        try:
            async with self.session_factory() as session:
                upload = await session.get(AdUpload, upload_id)
                if upload is None:
                    logger.error("upload_not_found")
                    return None
                try:
                    return await self._process(session, upload, workdir)
                except Exception as exc:
                    await session.rollback()
                    logger.exception("upload_processing_failed")
                    await self._record_error(session, upload_id, str(exc) or exc.__class__.__name__)
                    return None
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    async def _process(self, session: AsyncSession, upload: AdUpload, workdir: Path) -> Optional[Ad]:
        logger = self.logger.bind(upload_id=upload.id, remote=upload.remote)
        source_name = filename_from_url(upload.storage_path) if upload.remote else Path(upload.storage_path).name
        raw_path = workdir / f"source{Path(source_name).suffix or '.bin'}"

        url = await self._source_url(upload)
        await download_to(url, raw_path, self.http_client)
        logger.info("upload_downloaded", size_bytes=raw_path.stat().st_size)

        duration = await asyncio.to_thread(self.prober, raw_path)
        if duration is None or duration > self.settings.max_duration_s:
            message = ERROR_NO_DURATION if duration is None else ERROR_TOO_LONG.format(limit=self.settings.max_duration_s)
            logger.info("upload_rejected", duration_sec=duration, reason=message)
            await self._record_error(session, upload.id, message, duration_sec=duration)
            return None

        key = timestamped_key(Path(upload.filename or source_name).stem or "upload")
        video_path = workdir / f"{key}.mp4"
        thumb_path = workdir / f"{key}.jpg"
        await asyncio.to_thread(
            self.transcoder,
            raw_path,
            video_path,
            max_duration_s=self.settings.max_duration_s,
            bounds=FrameBounds(max_height=self.settings.transcode_max_height),
        )
        offset = min(self.settings.thumbnail_offset_s, duration / 2)
        await asyncio.to_thread(
            self.thumbnailer,
            video_path,
            thumb_path,
            offset_s=offset,
            width=self.settings.thumbnail_width,
        )

        video_url = await asyncio.to_thread(
            self.storage.upload, self.settings.published_bucket, f"processed/{video_path.name}", video_path, content_type="video/mp4"
        )
        thumb_url = await asyncio.to_thread(
            self.storage.upload, self.settings.thumbs_bucket, f"thumbs/{thumb_path.name}", thumb_path, content_type="image/jpeg"
        )

        ad = Ad(
            title=(upload.filename or f"Uploaded ad {int(time.time())}")[:512],
            description="",
            platform=Platform.user_upload,
            source_url=video_url,
            source_type=SourceType.user_upload,
            original_owner=upload.user_id,
            published=True,
            thumbnail=thumb_url,
            duration_sec=duration,
            tags=[],
        )
        session.add(ad)
        upload.processed = True
        upload.duration_sec = duration
        upload.processed_at = utcnow()
        upload.error = None
        await session.commit()
        logger.info("upload_processed", ad_id=ad.id, duration_sec=duration)
        return ad

    async def _source_url(self, upload: AdUpload) -> str:
        if upload.remote:
            return upload.storage_path
        signed = await asyncio.to_thread(
            self.storage.presign_get,
            self.settings.raw_bucket,
            upload.storage_path,
            expires_s=self.settings.signed_url_ttl_s,
        )
        return signed.url

    async def _record_error(
        self, session: AsyncSession, upload_id: str, message: str, *, duration_sec: int | None = None
    ) -> None:
        values = {
            "processed": False,
            "error": message,
            "processed_at": utcnow(),
            "claimed_at": None,
            "claimed_by": None,
        }
        if duration_sec is not None:
            values["duration_sec"] = duration_sec
        try:
            await session.execute(
                update(AdUpload)
                .where(AdUpload.id == upload_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        except Exception:
            await session.rollback()
            self.logger.exception("upload_error_not_recorded", upload_id=upload_id)


__all__ = ["ERROR_NO_DURATION", "ERROR_TOO_LONG", "UploadProcessor", "default_worker_id"]
