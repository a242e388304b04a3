from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence

from adreel.core.logging import get_logger

from .candidates import Candidate, infer_platform, parse_duration_text

NS = {
    "atom": "http://www.w3.org/2005/Atom",
    "yt": "http://www.youtube.com/xml/schemas/2015",
    "media": "http://search.yahoo.com/mrss/",
    "itunes": "http://www.itunes.com/dtds/podcast-1.0.dtd",
}

logger = get_logger(component="feed_adapters")


class FeedParseError(ValueError):
    """Raised when a source body cannot be parsed by the selected adapter."""


def _text(element: Optional[ET.Element]) -> Optional[str]:
    if element is None or element.text is None:
        return None
    value = element.text.strip()
    return value or None


def _parse_xml(body: str) -> ET.Element:
    try:
        return ET.fromstring(body)
    except ET.ParseError as exc:
        raise FeedParseError(f"malformed XML: {exc}") from exc


def _looks_like_xml(body: str) -> bool:
    return body.lstrip().startswith("<")


class FeedAdapter(ABC):
    """Turns one fetched source body into candidates."""

    name: str = "adapter"

    @abstractmethod
    def matches(self, url: str, content_type: str, body: str) -> bool: ...

    @abstractmethod
    def parse(self, body: str, origin: str) -> List[Candidate]: ...


class StructuredFeedAdapter(FeedAdapter):
    """Atom video feeds in the YouTube channel/playlist shape."""

    name = "structured_feed"

    def matches(self, url: str, content_type: str, body: str) -> bool:
        if "youtube.com/feeds/" in url:
            return True
        head = body[:2048]
        return _looks_like_xml(body) and "<feed" in head and NS["atom"] in head

    def parse(self, body: str, origin: str) -> List[Candidate]:
        root = _parse_xml(body)
        candidates: List[Candidate] = []
        for entry in root.findall("atom:entry", NS):
            link = self._alternate_link(entry)
            if not link:
                logger.info("feed_entry_skipped", origin=origin, reason="missing_link")
                continue
            group = entry.find("media:group", NS)
            thumbnail = None
            description = None
            duration = None
            if group is not None:
                thumb = group.find("media:thumbnail", NS)
                thumbnail = thumb.get("url") if thumb is not None else None
                description = _text(group.find("media:description", NS))
                content = group.find("media:content", NS)
                if content is not None:
                    duration = parse_duration_text(content.get("duration"))
            yt_duration = entry.find(".//yt:duration", NS)
            if yt_duration is not None:
                duration = parse_duration_text(yt_duration.get("seconds"))
            candidates.append(
                Candidate(
                    source_url=link,
                    title=_text(entry.find("atom:title", NS)) or link,
                    origin=origin,
                    platform=infer_platform(link),
                    description=description,
                    thumbnail=thumbnail,
                    duration_sec=duration,
                    external_id=_text(entry.find("yt:videoId", NS)) or _text(entry.find("atom:id", NS)),
                )
            )
        return candidates

    @staticmethod
    def _alternate_link(entry: ET.Element) -> Optional[str]:
        for link in entry.findall("atom:link", NS):
            if link.get("rel", "alternate") == "alternate" and link.get("href"):
                return link.get("href")
        return None


class JsonListAdapter(FeedAdapter):
    """A JSON array of objects (or ``{"items": [...]}``), each carrying at least a URL."""

    name = "json_list"
    url_keys = ("url", "sourceUrl", "source_url", "link")

    def matches(self, url: str, content_type: str, body: str) -> bool:
        if "json" in content_type.lower():
            return True
        return body.lstrip()[:1] in {"[", "{"}

    def parse(self, body: str, origin: str) -> List[Candidate]:
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as exc:
            raise FeedParseError(f"malformed JSON: {exc.msg}") from exc
        items = payload.get("items") if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            raise FeedParseError("expected a JSON array of items")

        candidates: List[Candidate] = []
        for index, item in enumerate(items):
            candidate = self._to_candidate(item, origin)
            if candidate is None:
                logger.info("feed_entry_skipped", origin=origin, index=index, reason="missing_url")
                continue
            candidates.append(candidate)
        return candidates

    def _to_candidate(self, item: Any, origin: str) -> Optional[Candidate]:
        if not isinstance(item, dict):
            return None
        url = next((item[key] for key in self.url_keys if isinstance(item.get(key), str) and item[key].strip()), None)
        if not url:
            return None
        url = url.strip()
        duration = item.get("durationSec", item.get("duration_sec", item.get("duration")))
        return Candidate(
            source_url=url,
            title=_string(item, "title") or url,
            origin=origin,
            platform=infer_platform(url),
            description=_string(item, "description"),
            thumbnail=_string(item, "thumbnail", "thumbnail_url"),
            duration_sec=parse_duration_text(duration),
            external_id=_string(item, "id"),
            industry=_string(item, "industry"),
            hook_type=_string(item, "hookType", "hook_type"),
            cta_type=_string(item, "ctaType", "cta_type"),
            tags=_string_list(item.get("tags")),
        )


class GenericFeedAdapter(FeedAdapter):
    """RSS 2.0 fallback: ``item`` link/title/enclosure triples."""

    name = "generic_feed"

    def matches(self, url: str, content_type: str, body: str) -> bool:
        return True

    def parse(self, body: str, origin: str) -> List[Candidate]:
        if not _looks_like_xml(body):
            raise FeedParseError("source is neither JSON nor XML")
        root = _parse_xml(body)
        candidates: List[Candidate] = []
        for item in root.iter("item"):
            enclosure = item.find("enclosure")
            media_content = item.find("media:content", NS)
            source_url = None
            if enclosure is not None and enclosure.get("url"):
                source_url = enclosure.get("url")
            elif media_content is not None and media_content.get("url"):
                source_url = media_content.get("url")
            else:
                source_url = _text(item.find("link"))
            if not source_url:
                logger.info("feed_entry_skipped", origin=origin, reason="missing_link")
                continue

            duration = None
            if media_content is not None:
                duration = parse_duration_text(media_content.get("duration"))
            if duration is None:
                duration = parse_duration_text(_text(item.find("itunes:duration", NS)))
            thumb = item.find("media:thumbnail", NS)
            candidates.append(
                Candidate(
                    source_url=source_url,
                    title=_text(item.find("title")) or source_url,
                    origin=origin,
                    platform=infer_platform(source_url),
                    description=_text(item.find("description")),
                    thumbnail=thumb.get("url") if thumb is not None else None,
                    duration_sec=duration,
                    external_id=_text(item.find("guid")),
                    tags=[c for c in (_text(el) for el in item.findall("category")) if c],
                )
            )
        return candidates


def _string(item: Dict[str, Any], *keys: str) -> Optional[str]:
    """First non-empty string (or integer id) under ``keys``; other JSON types are dropped."""
    for key in keys:
        value = item.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (str, int)) and str(value).strip():
            return str(value).strip()
    return None


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if isinstance(v, (str, int)) and str(v).strip()]


DEFAULT_ADAPTERS: Sequence[FeedAdapter] = (StructuredFeedAdapter(), JsonListAdapter(), GenericFeedAdapter())


def select_adapter(url: str, content_type: str, body: str, adapters: Iterable[FeedAdapter] = DEFAULT_ADAPTERS) -> FeedAdapter:
    for adapter in adapters:
        if adapter.matches(url, content_type or "", body):
            return adapter
    raise FeedParseError(f"no adapter accepts {url}")


def parse_source(url: str, content_type: str, body: str, adapters: Iterable[FeedAdapter] = DEFAULT_ADAPTERS) -> List[Candidate]:
    adapter = select_adapter(url, content_type, body, adapters)
    return adapter.parse(body, origin=url)


__all__ = [
    "DEFAULT_ADAPTERS",
    "FeedAdapter",
    "FeedParseError",
    "GenericFeedAdapter",
    "JsonListAdapter",
    "StructuredFeedAdapter",
    "parse_source",
    "select_adapter",
]
