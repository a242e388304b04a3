from __future__ import annotations

from typing import Iterable, List, Sequence

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adreel.core.logging import get_logger
from adreel.db.models import Ad, AdUpload, SourceType
from adreel.ingest import Candidate, FeedAdapter, parse_source, select_candidates
from adreel.ingest.feeds import DEFAULT_ADAPTERS
from adreel.media import is_http_url
from adreel.services.catalog_service import CatalogService


class IngestService:
    """Discovers candidate videos in external feeds and enqueues them for processing.

    Every source and every candidate is isolated: a failure is logged and the
    run continues with the next one.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        http_client: httpx.AsyncClient,
        *,
        adapters: Sequence[FeedAdapter] = DEFAULT_ADAPTERS,
    ):
        self.session_factory = session_factory
        self.http_client = http_client
        self.adapters = adapters
        self.logger = get_logger(component="ingest_service")

    async def fetch_source(self, url: str) -> List[Candidate]:
        response = await self.http_client.get(url)
        response.raise_for_status()
        return parse_source(url, response.headers.get("content-type", ""), response.text, self.adapters)

    async def collect(self, sources: Iterable[str]) -> List[Candidate]:
        candidates: List[Candidate] = []
        for source in sources:
            try:
                found = await self.fetch_source(source)
            except Exception as exc:
                self.logger.warning("ingest_source_failed", source=source, error=str(exc))
                continue
            self.logger.info("ingest_source_parsed", source=source, candidates=len(found))
            candidates.extend(found)
        return candidates

    async def discover(self, sources: Iterable[str], max_items: int) -> List[Candidate]:
        """Fetch ``sources``, drop known URLs, keep the ``max_items`` shortest and persist them.

        Returns the candidates that were written, each with ``ad_id`` filled in.
        """
        collected = await self.collect(sources)

        unique: dict[str, Candidate] = {}
        for candidate in collected:
            if not is_http_url(candidate.source_url):
                self.logger.info("ingest_candidate_skipped", source_url=candidate.source_url, reason="invalid_url")
                continue
            unique.setdefault(candidate.source_url, candidate)

        async with self.session_factory() as session:
            catalog = CatalogService(session)
            existing = await catalog.existing_source_urls(unique.keys())
            fresh = [c for url, c in unique.items() if url not in existing]
            selected = select_candidates(fresh, max_items)
            self.logger.info(
                "ingest_candidates_selected",
                collected=len(collected),
                duplicates=len(existing),
                selected=len(selected),
            )

            ingested: List[Candidate] = []
            for candidate in selected:
                try:
                    await self._persist(session, catalog, candidate)
                except Exception as exc:
                    await session.rollback()
                    self.logger.warning("ingest_candidate_failed", source_url=candidate.source_url, error=str(exc))
                    continue
                ingested.append(candidate)
        return ingested

    async def _persist(self, session: AsyncSession, catalog: CatalogService, candidate: Candidate) -> None:
        ad = Ad(
            title=candidate.title[:512],
            description=candidate.description,
            platform=candidate.platform,
            industry=candidate.industry,
            hook_type=candidate.hook_type,
            cta_type=candidate.cta_type,
            source_url=candidate.source_url,
            source_type=SourceType.auto_ingested,
            published=True,
            thumbnail=candidate.thumbnail,
            duration_sec=candidate.duration_sec,
        )
        await catalog.add_ad(ad, tag_names=candidate.tags)
        session.add(
            AdUpload(
                storage_path=candidate.source_url,
                filename=candidate.title[:512],
                user_id=None,
                remote=True,
                processed=False,
            )
        )
        await session.commit()
        candidate.ad_id = ad.id
        self.logger.info("ingest_candidate_created", ad_id=ad.id, source_url=candidate.source_url)


__all__ = ["IngestService"]
