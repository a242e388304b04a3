from __future__ import annotations

import asyncio
from typing import Any, Iterable, Optional

from adreel.core import db
from adreel.core.config import get_settings
from adreel.core.http import create_async_client
from adreel.core.logging import configure_logging, get_logger
from adreel.services.ingest_service import IngestService
from adreel.services.job_scheduler import JobScheduler
from adreel.services.metadata import MetadataResolver


async def ingest(sources: Optional[Iterable[str]] = None, max_items: Optional[int] = None) -> list[dict[str, Any]]:
    settings = get_settings()
    async with db.lifespan(settings) as database, create_async_client(settings) as client:
        service = IngestService(database.session_factory, client)
        ingested = await service.discover(
            list(sources) if sources else list(settings.ingest_sources),
            max_items or settings.ingest_max_items,
        )
    return [{"ad_id": c.ad_id, "source_url": c.source_url, "duration_sec": c.duration_sec} for c in ingested]


async def sweep() -> dict[str, Any]:
    settings = get_settings()
    async with db.lifespan(settings) as database, create_async_client(settings) as client:
        resolver = MetadataResolver(client, youtube_api_key=settings.secrets.youtube_api_key)
        report = await JobScheduler(database.session_factory, resolver).sweep()
    return report.as_dict()


def run_ingest(sources: Optional[list[str]] = None, max_items: Optional[int] = None) -> list[dict[str, Any]]:
    """Entry-point executed by the job backend (RQ or inline)."""

    configure_logging(get_settings().log_level)
    result = asyncio.run(ingest(sources, max_items))
    get_logger(component="tasks").info("ingest_task_finished", ingested=len(result))
    return result


def run_sweep() -> dict[str, Any]:
    """Entry-point executed by the job backend (RQ or inline)."""

    configure_logging(get_settings().log_level)
    return asyncio.run(sweep())


__all__ = ["ingest", "run_ingest", "run_sweep", "sweep"]
