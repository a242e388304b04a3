from __future__ import annotations

import httpx
from sqlalchemy import select

from adreel.core.db import Database
from adreel.db.models import Ad, AdUpload, SourceType
from adreel.services import ingest_service as ingest_module
from adreel.services.ingest_service import IngestService
from tests.conftest import run_db, seed_ad

FEED_URL = "https://feeds.example.com/ads.json"
BROKEN_URL = "https://broken.example.com/feed"


def _feed_transport(items: list[dict]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == FEED_URL:
            return httpx.Response(200, json=items)
        return httpx.Response(500, text="upstream exploded")

    return httpx.MockTransport(handler)


def _discover(items: list[dict], sources: list[str], max_items: int):
    async def scenario(database: Database):
        async with httpx.AsyncClient(transport=_feed_transport(items)) as client:
            service = IngestService(database.session_factory, client)
            ingested = await service.discover(sources, max_items)
        async with database.session_factory() as session:
            ads = (await session.execute(select(Ad).order_by(Ad.created_at))).scalars().all()
            uploads = (await session.execute(select(AdUpload))).scalars().all()
        return ingested, ads, uploads

    return run_db(scenario)


def test_discover_skips_known_urls_and_keeps_shortest():
    seed_ad(source_url="https://cdn.example.com/known.mp4", duration_sec=3)
    items = [
        {"url": "https://cdn.example.com/known.mp4", "title": "Known", "durationSec": 2},
        {"url": "https://cdn.example.com/long.mp4", "title": "Long", "durationSec": 30},
        {"url": "https://cdn.example.com/short.mp4", "title": "Short", "durationSec": 5, "tags": ["food", "promo"]},
        {"url": "https://cdn.example.com/short.mp4", "title": "Short again", "durationSec": 5},
        {"url": "https://cdn.example.com/unknown.mp4", "title": "Unknown"},
        {"url": "ftp://cdn.example.com/bad.mp4", "title": "Bad scheme", "durationSec": 1},
    ]

    ingested, ads, uploads = _discover(items, [FEED_URL], max_items=2)

    assert [c.source_url for c in ingested] == ["https://cdn.example.com/short.mp4", "https://cdn.example.com/long.mp4"]
    assert all(c.ad_id for c in ingested)

    by_url = {ad.source_url: ad for ad in ads}
    assert set(by_url) == {
        "https://cdn.example.com/known.mp4",
        "https://cdn.example.com/short.mp4",
        "https://cdn.example.com/long.mp4",
    }
    short = by_url["https://cdn.example.com/short.mp4"]
    assert short.source_type == SourceType.auto_ingested
    assert short.published is True
    assert sorted(tag.name for tag in short.tags) == ["food", "promo"]

    assert sorted(u.storage_path for u in uploads) == sorted(c.source_url for c in ingested)
    assert all(u.remote and not u.processed for u in uploads)


def test_rerun_on_unchanged_source_creates_nothing():
    items = [{"url": "https://cdn.example.com/a.mp4", "title": "A", "durationSec": 4}]
    first, _, _ = _discover(items, [FEED_URL], max_items=6)
    second, ads, uploads = _discover(items, [FEED_URL], max_items=6)
    assert len(first) == 1
    assert second == []
    assert len(ads) == 1
    assert len(uploads) == 1


def test_failing_source_does_not_stop_the_run():
    items = [{"url": "https://cdn.example.com/ok.mp4", "title": "Ok", "durationSec": 4}]
    ingested, ads, _ = _discover(items, [BROKEN_URL, FEED_URL], max_items=6)
    assert [c.source_url for c in ingested] == ["https://cdn.example.com/ok.mp4"]
    assert len(ads) == 1



def test_insert_failure_on_one_candidate_keeps_the_others(monkeypatch):
    real_ad = ingest_module.Ad

    def ad_factory(**values):
        if values["source_url"] == "https://cdn.example.com/b.mp4":
            values["title"] = None
        return real_ad(**values)

    monkeypatch.setattr(ingest_module, "Ad", ad_factory)
    items = [
        {"url": "https://cdn.example.com/a.mp4", "title": "A", "durationSec": 3},
        {"url": "https://cdn.example.com/b.mp4", "title": "B", "durationSec": 4},
        {"url": "https://cdn.example.com/c.mp4", "title": "C", "durationSec": 5},
    ]

    ingested, ads, uploads = _discover(items, [FEED_URL], max_items=6)

    kept = ["https://cdn.example.com/a.mp4", "https://cdn.example.com/c.mp4"]
    assert [c.source_url for c in ingested] == kept
    assert sorted(ad.source_url for ad in ads) == kept
    assert sorted(u.storage_path for u in uploads) == kept
    assert {c.ad_id for c in ingested} == {ad.id for ad in ads}
