"""Operator batch operations: loading a folder of MP4s and exporting short entries."""

from __future__ import annotations

import asyncio
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adreel.core.config import Settings
from adreel.core.logging import get_logger
from adreel.core.storage import Storage, StorageError
from adreel.db.models import Ad, Platform, SourceType
from adreel.media import FrameBounds, MediaError, download_to, is_http_url, probe_duration, transcode
from adreel.services.intake_service import timestamped_key

logger = get_logger(component="bulk")

_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


@dataclass(slots=True)
class BulkResult:
    created: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


def slugify(value: str | None) -> str:
    return _SLUG_CHARS.sub("-", (value or "").lower()).strip("-")


async def bulk_upload(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    storage: Storage,
    directory: Path,
    *,
    bucket: Optional[str] = None,
    trim: bool = False,
    prober: Callable[[Path], Optional[int]] = probe_duration,
    transcoder: Callable[..., Path] = transcode,
) -> BulkResult:
    """Upload every ``*.mp4`` in ``directory`` and create a published entry for each.

    Files whose duration cannot be measured are uploaded without a duration.
    Long files are trimmed when ``trim`` is set and skipped otherwise.
    """
    bucket = bucket or settings.published_bucket
    limit = settings.max_duration_s
    result = BulkResult()
    files = sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == ".mp4")

    for path in files:
        log = logger.bind(file=path.name)
        duration = await asyncio.to_thread(prober, path)
        workdir: Optional[Path] = None
        try:
            source = path
            if duration is not None and duration > limit:
                if not trim:
                    log.info("bulk_upload_skipped_long", duration_sec=duration)
                    result.skipped.append(path.name)
                    continue
                workdir = Path(tempfile.mkdtemp(prefix="adreel-bulk-"))
                source = workdir / path.name
                await asyncio.to_thread(
                    transcoder,
                    path,
                    source,
                    max_duration_s=limit,
                    bounds=FrameBounds(max_height=settings.transcode_max_height),
                )
                duration = limit

            key = timestamped_key(path.name, prefix="processed/")
            url = await asyncio.to_thread(storage.upload, bucket, key, source, content_type="video/mp4")
            async with session_factory() as session:
                ad = Ad(
                    title=path.name[:512],
                    description="",
                    platform=Platform.meta,
                    source_url=url,
                    source_type=SourceType.user_upload,
                    published=True,
                    duration_sec=duration,
                    tags=[],
                )
                session.add(ad)
                await session.commit()
            log.info("bulk_upload_created", ad_id=ad.id, duration_sec=duration)
            result.created.append(ad.id)
        except (MediaError, StorageError, OSError, SQLAlchemyError) as exc:
            log.warning("bulk_upload_failed", error=str(exc))
            result.failed.append(path.name)
        finally:
            if workdir is not None:
                shutil.rmtree(workdir, ignore_errors=True)
    return result


async def export_short(
    session_factory: async_sessionmaker[AsyncSession],
    http_client: httpx.AsyncClient,
    out_dir: Path,
    *,
    limit: int = 6,
    max_duration_s: int = 10,
) -> List[Path]:
    """Download the oldest published entries of at most ``max_duration_s`` into ``out_dir``."""
    out_dir.mkdir(parents=True, exist_ok=True)
    stmt = (
        select(Ad)
        .where(Ad.published.is_(True), Ad.duration_sec.is_not(None), Ad.duration_sec <= max_duration_s)
        .order_by(Ad.created_at, Ad.id)
        .limit(limit)
    )
    async with session_factory() as session:
        ads = [(ad.id, ad.title, ad.source_url) for ad in (await session.execute(stmt)).scalars().all()]

    saved: List[Path] = []
    for ad_id, title, source_url in ads:
        if not is_http_url(source_url):
            logger.info("export_skipped", ad_id=ad_id, reason="unsupported_source")
            continue
        target = out_dir / f"{ad_id}__{slugify(title) or ad_id}.mp4"
        try:
            await download_to(source_url, target, http_client)
        except MediaError as exc:
            target.unlink(missing_ok=True)
            logger.warning("export_failed", ad_id=ad_id, error=str(exc))
            continue
        logger.info("export_saved", ad_id=ad_id, path=str(target))
        saved.append(target)
    return saved


__all__ = ["BulkResult", "bulk_upload", "export_short", "slugify"]
