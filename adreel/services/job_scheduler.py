from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adreel.core.logging import get_logger
from adreel.db.models import Ad, AdJob, AdJobType, SourceType

from .metadata import MetadataResolver


def as_utc(value: datetime) -> datetime:
    # SQLite hands timezone-aware columns back naive.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_due(last_run_at: Optional[datetime], interval_min: int, now: datetime) -> bool:
    if last_run_at is None:
        return True
    return as_utc(now) - as_utc(last_run_at) >= timedelta(minutes=interval_min)


@dataclass(slots=True)
class SweepReport:
    ran_at: datetime
    due: int = 0
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "ran_at": self.ran_at.isoformat(),
            "due": self.due,
            "succeeded": list(self.succeeded),
            "failed": list(self.failed),
        }


class JobScheduler:
    """Runs due REPOST/REFRESH jobs.

    ``last_run_at`` is stamped for every due job after its attempt, whatever the
    outcome; a failing job never stops the sweep or deactivates itself.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], resolver: MetadataResolver):
        self.session_factory = session_factory
        self.resolver = resolver
        self.logger = get_logger(component="job_scheduler")

    async def sweep(self, now: datetime | None = None) -> SweepReport:
        now = as_utc(now or datetime.now(timezone.utc))
        report = SweepReport(ran_at=now)

        async with self.session_factory() as session:
            stmt = select(AdJob).where(AdJob.active.is_(True)).order_by(AdJob.created_at, AdJob.id)
            jobs = (await session.execute(stmt)).scalars().all()
            due = [(job.id, job.ad_id, job.type) for job in jobs if is_due(job.last_run_at, job.interval_min, now)]

        report.due = len(due)
        for job_id, ad_id, job_type in due:
            log = self.logger.bind(job_id=job_id, ad_id=ad_id, job_type=job_type.value)
            async with self.session_factory() as session:
                try:
                    log.info("ad_job_running")
                    await self.run_action(session, job_type, ad_id)
                    report.succeeded.append(job_id)
                except Exception:
                    await session.rollback()
                    log.exception("ad_job_failed")
                    report.failed.append(job_id)

                job = await session.get(AdJob, job_id)
                if job is not None:
                    job.last_run_at = now
                    await session.commit()

        self.logger.info("ad_job_sweep_finished", due=report.due, failed=len(report.failed))
        return report

    async def run_action(self, session: AsyncSession, job_type: AdJobType, ad_id: str) -> None:
        if job_type == AdJobType.REPOST:
            await self.repost(session, ad_id)
        elif job_type == AdJobType.REFRESH:
            await self.refresh(session, ad_id)
        else:  # pragma: no cover - enum is closed
            raise ValueError(f"unknown job type {job_type}")

    async def repost(self, session: AsyncSession, ad_id: str) -> Ad:
        source = await session.get(Ad, ad_id)
        if source is None:
            raise LookupError(f"ad {ad_id} not found")
        copy = Ad(
            title=source.title,
            description=source.description,
            platform=source.platform,
            industry=source.industry,
            hook_type=source.hook_type,
            cta_type=source.cta_type,
            source_url=source.source_url,
            source_type=SourceType.user_url,
            original_owner=source.original_owner,
            published=True,
            thumbnail=source.thumbnail,
            duration_sec=source.duration_sec,
            tags=[],
        )
        session.add(copy)
        await session.commit()
        self.logger.info("ad_reposted", ad_id=ad_id, new_ad_id=copy.id)
        return copy

    async def refresh(self, session: AsyncSession, ad_id: str) -> bool:
        ad = await session.get(Ad, ad_id)
        if ad is None:
            raise LookupError(f"ad {ad_id} not found")
        resolved = await self.resolver.resolve(ad.source_url)
        if resolved.empty:
            self.logger.info("ad_refresh_unresolved", ad_id=ad_id)
            return False
        if resolved.title:
            ad.title = resolved.title[:512]
        if resolved.description:
            ad.description = resolved.description
        if resolved.thumbnail:
            ad.thumbnail = resolved.thumbnail
        await session.commit()
        self.logger.info("ad_refreshed", ad_id=ad_id, provider=resolved.provider)
        return True


__all__ = ["JobScheduler", "SweepReport", "as_utc", "is_due"]
