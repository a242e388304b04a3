from __future__ import annotations

from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from adreel.core.auth import AuthContext
from adreel.core.logging import get_logger
from adreel.db.models import Ad, AdJob, AdJobType

DEFAULT_INTERVAL_MIN = 1440


class AdJobService:
    """Start/stop management of recurring jobs, gated on ownership of the target entry."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.logger = get_logger(component="ad_job_service")

    async def _authorised_ad(self, ad_id: str, context: AuthContext) -> Ad:
        ad = await self.session.get(Ad, ad_id)
        if ad is None:
            raise LookupError("ad_not_found")
        if not context.can_manage(ad.original_owner):
            self.logger.warning("ad_job_forbidden", ad_id=ad_id, user_id=context.user_id)
            raise PermissionError("forbidden")
        return ad

    async def start(
        self,
        ad_id: str,
        context: AuthContext,
        *,
        job_type: AdJobType = AdJobType.REPOST,
        interval_min: int = DEFAULT_INTERVAL_MIN,
    ) -> AdJob:
        await self._authorised_ad(ad_id, context)
        stmt = select(AdJob).where(AdJob.ad_id == ad_id, AdJob.type == job_type).order_by(AdJob.created_at)
        job = (await self.session.execute(stmt)).scalars().first()
        if job is None:
            job = AdJob(ad_id=ad_id, type=job_type, interval_min=interval_min, active=True)
            self.session.add(job)
        else:
            job.interval_min = interval_min
            job.active = True
        await self.session.commit()
        self.logger.info("ad_job_started", ad_id=ad_id, job_id=job.id, job_type=job_type.value, interval_min=interval_min)
        return job

    async def stop(self, ad_id: str, context: AuthContext) -> int:
        await self._authorised_ad(ad_id, context)
        result = await self.session.execute(
            update(AdJob).where(AdJob.ad_id == ad_id, AdJob.active.is_(True)).values(active=False)
        )
        deactivated = result.rowcount or 0
        await self.session.commit()
        self.logger.info("ad_job_stopped", ad_id=ad_id, deactivated=deactivated)
        return deactivated

    async def list_jobs(self, ad_id: str, context: AuthContext) -> Sequence[AdJob]:
        await self._authorised_ad(ad_id, context)
        stmt = select(AdJob).where(AdJob.ad_id == ad_id).order_by(AdJob.created_at)
        return (await self.session.execute(stmt)).scalars().all()


def job_snapshot(job: AdJob) -> dict:
    return {
        "id": job.id,
        "ad_id": job.ad_id,
        "type": job.type.value,
        "interval_min": job.interval_min,
        "active": job.active,
        "last_run_at": job.last_run_at,
    }


__all__ = ["AdJobService", "DEFAULT_INTERVAL_MIN", "job_snapshot"]
