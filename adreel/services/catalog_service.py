from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from adreel.core.logging import get_logger
from adreel.db.models import Ad, Platform, SourceType, Tag
from adreel.ingest import infer_platform
from adreel.media import is_http_url
from adreel.services.metadata import MetadataResolver

SHORT_FORM_LIMIT_S = 10
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9\-_. ]")
MAX_FILENAME_LENGTH = 120


class DownloadPolicyError(ValueError):
    """The requested entry may not be downloaded (too long, unknown length or no source)."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


class DuplicateAdError(Exception):
    """A catalog entry already points at the submitted source URL."""

    def __init__(self, ad_id: str):
        super().__init__(f"Ad {ad_id} already uses this source URL")
        self.ad_id = ad_id


@dataclass(slots=True)
class AdFilters:
    platform: Optional[Platform] = None
    industry: Optional[str] = None
    hook_type: Optional[str] = None
    cta_type: Optional[str] = None
    max_duration: Optional[int] = None
    published: Optional[bool] = True
    tag: Optional[str] = None


@dataclass(slots=True)
class DownloadPlan:
    source_url: str
    filename: str


def safe_filename(title: str | None, fallback: str) -> str:
    base = _UNSAFE_FILENAME_CHARS.sub("_", title or fallback)[:MAX_FILENAME_LENGTH].strip()
    return f"{base or fallback}.mp4"


def plan_download(ad: Ad, *, limit_s: int = SHORT_FORM_LIMIT_S) -> DownloadPlan:
    """Apply the short-form download policy to ``ad``."""
    if ad.duration_sec is None or ad.duration_sec > limit_s:
        raise DownloadPolicyError("duration_exceeds_limit", f"Downloads allowed only for short videos (<={limit_s}s)")
    if not ad.source_url:
        raise DownloadPolicyError("missing_source_url", "No source URL for ad")
    return DownloadPlan(source_url=ad.source_url, filename=safe_filename(ad.title, f"ad-{ad.id}"))


def ad_snapshot(ad: Ad) -> dict[str, Any]:
    return {
        "id": ad.id,
        "title": ad.title,
        "description": ad.description,
        "platform": ad.platform.value,
        "industry": ad.industry,
        "hook_type": ad.hook_type,
        "cta_type": ad.cta_type,
        "source_url": ad.source_url,
        "source_type": ad.source_type.value,
        "original_owner": ad.original_owner,
        "published": ad.published,
        "thumbnail": ad.thumbnail,
        "duration_sec": ad.duration_sec,
        "created_at": ad.created_at,
        "tags": sorted(tag.name for tag in ad.tags),
    }


class CatalogService:
    """Read/write access to catalog entries and their tags."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.logger = get_logger(component="catalog_service")

    async def get_ad(self, ad_id: str) -> Ad | None:
        return await self.session.get(Ad, ad_id)

    async def list_ads(self, filters: AdFilters, *, page: int = 1, page_size: int = 24) -> tuple[Sequence[Ad], int]:
        stmt = select(Ad)
        if filters.published is not None:
            stmt = stmt.where(Ad.published.is_(filters.published))
        if filters.platform is not None:
            stmt = stmt.where(Ad.platform == filters.platform)
        if filters.industry:
            stmt = stmt.where(Ad.industry == filters.industry)
        if filters.hook_type:
            stmt = stmt.where(Ad.hook_type == filters.hook_type)
        if filters.cta_type:
            stmt = stmt.where(Ad.cta_type == filters.cta_type)
        if filters.max_duration is not None:
            stmt = stmt.where(Ad.duration_sec.is_not(None), Ad.duration_sec <= filters.max_duration)
        if filters.tag:
            stmt = stmt.where(Ad.tags.any(Tag.name == filters.tag))

        total = (await self.session.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
        page_stmt = stmt.order_by(Ad.created_at.desc(), Ad.id).offset((page - 1) * page_size).limit(page_size)
        items = (await self.session.execute(page_stmt)).scalars().all()
        return items, total

    async def existing_source_urls(self, urls: Iterable[str]) -> set[str]:
        wanted = list(dict.fromkeys(urls))
        if not wanted:
            return set()
        found: set[str] = set()
        # SQLite caps bound parameters per statement.
        for start in range(0, len(wanted), 500):
            chunk = wanted[start : start + 500]
            result = await self.session.execute(select(Ad.source_url).where(Ad.source_url.in_(chunk)))
            found.update(result.scalars().all())
        return found

    async def upsert_tags(self, names: Iterable[str]) -> list[Tag]:
        tags: list[Tag] = []
        for name in dict.fromkeys(n.strip() for n in names if n and n.strip()):
            tag = (await self.session.execute(select(Tag).where(Tag.name == name))).scalar_one_or_none()
            if tag is None:
                tag = Tag(name=name)
                self.session.add(tag)
                await self.session.flush()
            tags.append(tag)
        return tags

    async def add_ad(self, ad: Ad, *, tag_names: Iterable[str] = ()) -> Ad:
        ad.tags = await self.upsert_tags(tag_names)
        self.session.add(ad)
        await self.session.flush()
        return ad

    async def add_from_url(
        self,
        url: str,
        *,
        owner: str | None,
        resolver: MetadataResolver,
        title: str | None = None,
        description: str | None = None,
        thumbnail: str | None = None,
        industry: str | None = None,
        hook_type: str | None = None,
        cta_type: str | None = None,
        tag_names: Iterable[str] = (),
    ) -> Ad:
        """Publish a user-submitted video page as a catalog entry.

        Explicit fields win over looked-up metadata; the title falls back to the
        URL itself. Raises ``ValueError`` for non-http URLs and
        ``DuplicateAdError`` when an entry already uses ``url``.
        """
        url = url.strip()
        if not is_http_url(url):
            raise ValueError("Only http(s) URLs can be added")
        existing = (await self.session.execute(select(Ad.id).where(Ad.source_url == url).limit(1))).scalar_one_or_none()
        if existing is not None:
            raise DuplicateAdError(existing)

        meta = await resolver.resolve(url)
        ad = Ad(
            title=(title or meta.title or url)[:512],
            description=description or meta.description,
            platform=infer_platform(url),
            industry=industry,
            hook_type=hook_type,
            cta_type=cta_type,
            source_url=url,
            source_type=SourceType.user_url,
            original_owner=owner,
            published=True,
            thumbnail=thumbnail or meta.thumbnail,
        )
        await self.add_ad(ad, tag_names=tag_names)
        await self.session.commit()
        self.logger.info("ad_added_from_url", ad_id=ad.id, owner=owner, metadata_provider=meta.provider)
        return ad

    async def set_published(self, ad_id: str, published: bool) -> Ad | None:
        ad = await self.get_ad(ad_id)
        if ad is None:
            return None
        ad.published = published
        await self.session.commit()
        return ad


__all__ = [
    "AdFilters",
    "CatalogService",
    "DownloadPlan",
    "DownloadPolicyError",
    "DuplicateAdError",
    "SHORT_FORM_LIMIT_S",
    "ad_snapshot",
    "plan_download",
    "safe_filename",
]
