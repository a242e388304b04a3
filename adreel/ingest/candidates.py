from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlparse

from adreel.db.models import Platform

UNKNOWN_DURATION_SENTINEL = 10**9

_PLATFORM_HOSTS = (
    (Platform.youtube, ("youtube.com", "youtu.be", "youtube-nocookie.com")),
    (Platform.meta, ("facebook.com", "fb.watch", "instagram.com", "fbcdn.net")),
    (Platform.tiktok, ("tiktok.com", "tiktokcdn.com")),
)


@dataclass(slots=True)
class Candidate:
    """A normalised video entry discovered in an external feed."""

    source_url: str
    title: str
    origin: str
    platform: Platform = Platform.auto_ingested
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    duration_sec: Optional[int] = None
    external_id: Optional[str] = None
    industry: Optional[str] = None
    hook_type: Optional[str] = None
    cta_type: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    ad_id: Optional[str] = None

    @property
    def sort_key(self) -> int:
        return self.duration_sec if self.duration_sec is not None else UNKNOWN_DURATION_SENTINEL


def host_matches(host: str, domain: str) -> bool:
    host = host.lower()
    return host == domain or host.endswith("." + domain)


def infer_platform(url: str) -> Platform:
    host = urlparse(url).hostname or ""
    for platform, domains in _PLATFORM_HOSTS:
        if any(host_matches(host, domain) for domain in domains):
            return platform
    return Platform.auto_ingested


def parse_duration_text(value: object) -> Optional[int]:
    """Parse ``"75"``, ``"75.4"``, ``"1:15"`` or ``"0:01:15"`` into whole seconds."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value < 0:
            return None
        return int(math.floor(value + 0.5))
    text = str(value).strip()
    if not text:
        return None
    try:
        if ":" in text:
            total = 0.0
            for part in text.split(":"):
                total = total * 60 + float(part)
            return parse_duration_text(total)
        return parse_duration_text(float(text))
    except ValueError:
        return None


def select_candidates(candidates: List[Candidate], limit: int) -> List[Candidate]:
    """Shortest first, unknown durations last, at most ``limit`` entries."""
    return sorted(candidates, key=lambda c: c.sort_key)[: max(limit, 0)]


__all__ = [
    "Candidate",
    "UNKNOWN_DURATION_SENTINEL",
    "host_matches",
    "infer_platform",
    "parse_duration_text",
    "select_candidates",
]
