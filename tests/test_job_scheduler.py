from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
from sqlalchemy import select

from adreel.core.db import Database
from adreel.db.models import Ad, AdJob, AdJobType, Platform, SourceType
from adreel.services.job_scheduler import JobScheduler, is_due
from adreel.services.metadata import MetadataResolver
from tests.conftest import fetch, run_db, seed_ad, seed_job

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _oembed_transport() -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oembed":
            return httpx.Response(
                200,
                json={
                    "title": "Fresh title",
                    "author_name": "Brand Channel",
                    "thumbnail_url": "https://i.ytimg.com/vi/abc123/hqdefault.jpg",
                },
            )
        return httpx.Response(404)

    return httpx.MockTransport(handler)


def _sweep(now: datetime = NOW):
    async def scenario(database: Database):
        async with httpx.AsyncClient(transport=_oembed_transport()) as client:
            scheduler = JobScheduler(database.session_factory, MetadataResolver(client))
            return await scheduler.sweep(now)

    return run_db(scenario)


def _ads_by_title(title: str) -> list[Ad]:
    async def scenario(database: Database):
        async with database.session_factory() as session:
            stmt = select(Ad).where(Ad.title == title).order_by(Ad.created_at)
            return (await session.execute(stmt)).scalars().all()

    return run_db(scenario)


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def test_is_due_boundaries():
    assert is_due(None, 60, NOW)
    assert not is_due(NOW - timedelta(minutes=59), 60, NOW)
    assert is_due(NOW - timedelta(minutes=60), 60, NOW)
    assert is_due(NOW - timedelta(minutes=61), 60, NOW)


def test_is_due_accepts_naive_timestamps():
    naive = (NOW - timedelta(minutes=30)).replace(tzinfo=None)
    assert not is_due(naive, 60, NOW)
    assert is_due(naive, 15, NOW)


def test_repost_copies_the_entry_as_user_url():
    ad_id = seed_ad(
        title="Original",
        description="desc",
        platform=Platform.tiktok,
        industry="fitness",
        hook_type="question",
        cta_type="shop_now",
        source_type=SourceType.auto_ingested,
        original_owner="user-9",
        published=False,
        thumbnail="https://cdn.example.com/t.jpg",
        duration_sec=6,
    )
    job_id = seed_job(ad_id, type=AdJobType.REPOST, interval_min=60)

    report = _sweep()

    assert report.due == 1
    assert report.succeeded == [job_id]
    copies = _ads_by_title("Original")
    assert len(copies) == 2
    copy = next(ad for ad in copies if ad.id != ad_id)
    assert copy.source_type == SourceType.user_url
    assert copy.published is True
    assert copy.platform == Platform.tiktok
    assert copy.industry == "fitness"
    assert copy.hook_type == "question"
    assert copy.cta_type == "shop_now"
    assert copy.original_owner == "user-9"
    assert copy.thumbnail == "https://cdn.example.com/t.jpg"
    assert copy.duration_sec == 6
    assert _as_utc(fetch(AdJob, job_id).last_run_at) == NOW


def test_refresh_applies_resolved_metadata():
    ad_id = seed_ad(title="Stale", source_url="https://www.youtube.com/shorts/abc123", thumbnail=None)
    seed_job(ad_id, type=AdJobType.REFRESH, interval_min=60)

    _sweep()

    ad = fetch(Ad, ad_id)
    assert ad.title == "Fresh title"
    assert ad.description == "By Brand Channel"
    assert ad.thumbnail == "https://i.ytimg.com/vi/abc123/hqdefault.jpg"


def test_failing_job_does_not_stop_the_sweep(monkeypatch):
    broken = seed_ad(title="Broken")
    healthy = seed_ad(title="Healthy")
    broken_job = seed_job(broken)
    healthy_job = seed_job(healthy)

    original = JobScheduler.repost

    async def flaky_repost(self, session, ad_id):
        if ad_id == broken:
            raise RuntimeError("storage offline")
        return await original(self, session, ad_id)

    monkeypatch.setattr(JobScheduler, "repost", flaky_repost)

    report = _sweep()

    assert report.failed == [broken_job]
    assert report.succeeded == [healthy_job]
    assert len(_ads_by_title("Healthy")) == 2
    assert len(_ads_by_title("Broken")) == 1
    for job_id in (broken_job, healthy_job):
        job = fetch(AdJob, job_id)
        assert _as_utc(job.last_run_at) == NOW
        assert job.active is True


def test_inactive_and_recent_jobs_are_left_alone():
    ad_id = seed_ad(title="Quiet")
    recent = NOW - timedelta(minutes=10)
    inactive_job = seed_job(ad_id, active=False)
    recent_job = seed_job(ad_id, last_run_at=recent, interval_min=60)

    report = _sweep()

    assert report.due == 0
    assert fetch(AdJob, inactive_job).last_run_at is None
    assert _as_utc(fetch(AdJob, recent_job).last_run_at) == recent
    assert len(_ads_by_title("Quiet")) == 1


def test_job_runs_again_after_its_interval():
    ad_id = seed_ad(title="Looping")
    seed_job(ad_id, interval_min=60)

    assert _sweep(NOW).due == 1
    assert _sweep(NOW + timedelta(minutes=30)).due == 0
    assert _sweep(NOW + timedelta(minutes=60)).due == 1
    assert len(_ads_by_title("Looping")) == 3
