from __future__ import annotations

import asyncio

import httpx
import pytest

from adreel.services.metadata import MetadataResolver, extract_youtube_id, is_youtube_url


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://youtu.be/abc123", "abc123"),
        ("https://www.youtube.com/watch?v=abc123&t=3", "abc123"),
        ("https://www.youtube.com/shorts/abc123", "abc123"),
        ("https://www.youtube.com/embed/abc123", "abc123"),
        ("https://www.youtube.com/channel/UC1", None),
    ],
)
def test_extract_youtube_id(url, expected):
    assert extract_youtube_id(url) == expected


def test_is_youtube_url_matches_subdomains_only():
    assert is_youtube_url("https://m.youtube.com/watch?v=a")
    assert not is_youtube_url("https://notyoutube.com/watch?v=a")


def _resolve(url: str, handler, **kwargs):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await MetadataResolver(client, **kwargs).resolve(url)

    return asyncio.run(scenario())


def test_youtube_oembed_result():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "www.youtube.com"
        return httpx.Response(200, json={"title": "Hook", "author_name": "Brand", "thumbnail_url": "https://i/t.jpg"})

    resolved = _resolve("https://youtu.be/abc123", handler)
    assert resolved.title == "Hook"
    assert resolved.description == "By Brand"
    assert resolved.thumbnail == "https://i/t.jpg"
    assert resolved.provider == "youtube_oembed"


def test_youtube_falls_back_to_data_api_when_keyed():
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.host)
        if request.url.host == "www.googleapis.com":
            assert request.url.params["id"] == "abc123"
            return httpx.Response(
                200,
                json={
                    "items": [
                        {
                            "snippet": {
                                "title": "From API",
                                "description": "Long copy",
                                "thumbnails": {"medium": {"url": "https://i/m.jpg"}},
                            }
                        }
                    ]
                },
            )
        return httpx.Response(401)

    resolved = _resolve("https://www.youtube.com/shorts/abc123", handler, youtube_api_key="key")
    assert seen == ["www.youtube.com", "www.googleapis.com"]
    assert resolved.title == "From API"
    assert resolved.description == "Long copy"
    assert resolved.thumbnail == "https://i/m.jpg"


def test_youtube_without_key_resolves_to_empty():
    resolved = _resolve("https://youtu.be/abc123", lambda request: httpx.Response(404))
    assert resolved.empty


def test_noembed_error_body_resolves_to_empty():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "noembed.com"
        return httpx.Response(200, json={"error": "no matching providers found"})

    assert _resolve("https://www.tiktok.com/@brand/video/1", handler).empty


def test_network_failure_resolves_to_empty():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    assert _resolve("https://www.tiktok.com/@brand/video/1", handler).empty
