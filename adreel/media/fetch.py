from __future__ import annotations

import shutil
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

from .errors import DownloadError

CHUNK_SIZE = 1024 * 1024


def is_http_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def filename_from_url(url: str, default: str = "source.bin") -> str:
    name = Path(unquote(urlparse(url).path)).name
    return name or default


async def download_to(url: str, destination: Path, client: httpx.AsyncClient) -> Path:
    """Write the bytes behind ``url`` to ``destination``.

    ``file://`` URLs are copied directly; they are produced by the local storage
    backend for signed raw-object access.
    """
    parsed = urlparse(url)
    if parsed.scheme == "file":
        source = Path(unquote(parsed.path))
        if not source.exists():
            raise DownloadError(f"local object missing: {source.name}")
        shutil.copyfile(source, destination)
        return destination
    if not is_http_url(url):
        raise DownloadError(f"unsupported URL scheme: {parsed.scheme or '<none>'}")

    try:
        async with client.stream("GET", url) as response:
            if response.status_code >= 400:
                raise DownloadError(f"GET {parsed.netloc} returned {response.status_code}")
            with destination.open("wb") as handle:
                async for chunk in response.aiter_bytes(CHUNK_SIZE):
                    handle.write(chunk)
    except httpx.HTTPError as exc:
        raise DownloadError(f"GET {parsed.netloc} failed: {exc}") from exc
    return destination


__all__ = ["download_to", "filename_from_url", "is_http_url"]
