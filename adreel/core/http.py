from __future__ import annotations

import httpx

from .config import Settings

USER_AGENT = "adreel/0.1 (+https://github.com/adreel)"


def create_async_client(settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=settings.http_timeout_s,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
        transport=transport,
    )


__all__ = ["USER_AGENT", "create_async_client"]
