from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

import httpx

from adreel.core.logging import get_logger
from adreel.ingest.candidates import host_matches

YOUTUBE_OEMBED_URL = "https://www.youtube.com/oembed"
YOUTUBE_VIDEOS_URL = "https://www.googleapis.com/youtube/v3/videos"
NOEMBED_URL = "https://noembed.com/embed"

_YOUTUBE_DOMAINS = ("youtube.com", "youtu.be", "youtube-nocookie.com")
_PATH_ID_PREFIXES = ("shorts", "embed", "live", "v")


@dataclass(slots=True)
class ResolvedMetadata:
    title: Optional[str] = None
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    provider: Optional[str] = None

    @property
    def empty(self) -> bool:
        return not (self.title or self.description or self.thumbnail)


def is_youtube_url(url: str) -> bool:
    host = urlparse(url).hostname or ""
    return any(host_matches(host, domain) for domain in _YOUTUBE_DOMAINS)


def extract_youtube_id(url: str) -> Optional[str]:
    """Video id from ``youtu.be/<id>``, ``?v=<id>`` or ``/shorts|embed|live/<id>``."""
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    segments = [s for s in parsed.path.split("/") if s]
    if host_matches(host, "youtu.be"):
        return segments[0] if segments else None
    query_id = parse_qs(parsed.query).get("v")
    if query_id and query_id[0]:
        return query_id[0]
    if len(segments) >= 2 and segments[0] in _PATH_ID_PREFIXES:
        return segments[1]
    return None


def _from_oembed(data: dict[str, Any], provider: str) -> ResolvedMetadata:
    author = data.get("author_name")
    return ResolvedMetadata(
        title=data.get("title") or None,
        description=f"By {author}" if author else None,
        thumbnail=data.get("thumbnail_url") or None,
        provider=provider,
    )


class MetadataResolver:
    """Looks up title/description/thumbnail for a public video URL.

    YouTube URLs try oEmbed first, then the Data API when a key is configured.
    Anything else goes through the generic noembed endpoint.
    """

    def __init__(self, http_client: httpx.AsyncClient, *, youtube_api_key: str | None = None):
        self.http_client = http_client
        self.youtube_api_key = youtube_api_key
        self.logger = get_logger(component="metadata_resolver")

    async def resolve(self, url: str) -> ResolvedMetadata:
        if is_youtube_url(url):
            found = await self._oembed(YOUTUBE_OEMBED_URL, {"url": url, "format": "json"}, provider="youtube_oembed")
            if found is not None and not found.empty:
                return found
            if self.youtube_api_key:
                video_id = extract_youtube_id(url)
                if video_id:
                    found = await self._youtube_data_api(video_id)
                    if found is not None:
                        return found
            return ResolvedMetadata()

        found = await self._oembed(NOEMBED_URL, {"url": url}, provider="noembed")
        return found or ResolvedMetadata()

    async def _oembed(self, endpoint: str, params: dict[str, str], *, provider: str) -> ResolvedMetadata | None:
        try:
            response = await self.http_client.get(endpoint, params=params)
        except httpx.HTTPError as exc:
            self.logger.info("metadata_lookup_failed", provider=provider, error=str(exc))
            return None
        if response.status_code != 200:
            self.logger.info("metadata_lookup_failed", provider=provider, status=response.status_code)
            return None
        try:
            data = response.json()
        except ValueError:
            return None
        # noembed reports failures in a 200 body.
        if not isinstance(data, dict) or data.get("error"):
            return None
        return _from_oembed(data, provider)

    async def _youtube_data_api(self, video_id: str) -> ResolvedMetadata | None:
        params = {"key": self.youtube_api_key or "", "part": "snippet,contentDetails", "id": video_id}
        try:
            response = await self.http_client.get(YOUTUBE_VIDEOS_URL, params=params)
        except httpx.HTTPError as exc:
            self.logger.info("metadata_lookup_failed", provider="youtube_data_api", error=str(exc))
            return None
        if response.status_code != 200:
            self.logger.info("metadata_lookup_failed", provider="youtube_data_api", status=response.status_code)
            return None
        try:
            items = response.json().get("items") or []
        except ValueError:
            return None
        if not items:
            return None
        snippet = items[0].get("snippet") or {}
        thumbnails = snippet.get("thumbnails") or {}
        thumb = (thumbnails.get("medium") or thumbnails.get("default") or {}).get("url")
        return ResolvedMetadata(
            title=snippet.get("title") or None,
            description=snippet.get("description") or None,
            thumbnail=thumb,
            provider="youtube_data_api",
        )


__all__ = ["MetadataResolver", "ResolvedMetadata", "extract_youtube_id", "is_youtube_url"]
