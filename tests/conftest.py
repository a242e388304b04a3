import asyncio
import shutil
import subprocess
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import jwt
import pytest
from fastapi.testclient import TestClient

from adreel.core import db
from adreel.core.config import get_settings
from adreel.core.db import Base, create_engine
from adreel.core.jobs import get_job_backend
from adreel.db.models import Ad, AdJob, AdJobType, AdUpload, Platform, SourceType
from adreel.main import create_app

T = TypeVar("T")

JWT_SECRET = "test-secret"
JWT_ISSUER = "adreel-test"
JWT_AUDIENCE = "adreel"

requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg/ffprobe not installed",
)


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default adreel environment bootstrap fixture for tests that manage their own .env",
    )


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path):
    if request.node.get_closest_marker("no_default_env"):
        get_settings.cache_clear()
        get_job_backend.cache_clear()
        yield None
        get_job_backend.cache_clear()
        get_settings.cache_clear()
        return
    db_path = tmp_path / "adreel_test.db"
    media_root = tmp_path / "media"

    monkeypatch.setenv("ADREEL_ENV", "test")
    monkeypatch.setenv("ADREEL_LOG_LEVEL", "debug")
    monkeypatch.setenv("ADREEL_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("ADREEL_MEDIA_ROOT", str(media_root))
    monkeypatch.setenv("ADREEL_STORAGE_BACKEND", "local")
    monkeypatch.setenv("ADREEL_JOB_BACKEND", "inline")
    monkeypatch.setenv("ADREEL_REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setenv("ADREEL_JWT_SECRET", JWT_SECRET)
    monkeypatch.setenv("ADREEL_JWT_ISSUER", JWT_ISSUER)
    monkeypatch.setenv("ADREEL_JWT_AUDIENCE", JWT_AUDIENCE)
    monkeypatch.setenv("ADREEL_WORKER_POLL_INTERVAL_S", "0")

    get_settings.cache_clear()
    get_job_backend.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    async def _setup() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_setup())

    yield settings

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    get_job_backend.cache_clear()
    get_settings.cache_clear()


@pytest.fixture()
def settings(configure_environment):
    return configure_environment


@pytest.fixture()
def client(configure_environment):
    app = create_app()
    with TestClient(app) as client:
        yield client


def run_db(fn: Callable[[db.Database], Awaitable[T]]) -> T:
    """Run ``fn`` against a freshly opened database handle on its own event loop."""

    async def _inner() -> T:
        async with db.lifespan(get_settings()) as database:
            return await fn(database)

    return asyncio.run(_inner())


def seed_ad(**overrides: Any) -> str:
    values: dict[str, Any] = {
        "title": "Seeded ad",
        "platform": Platform.youtube,
        "source_url": "https://cdn.example.com/seeded.mp4",
        "source_type": SourceType.user_url,
        "published": True,
        "duration_sec": 7,
        "tags": [],
    }
    values.update(overrides)

    async def _insert(database: db.Database) -> str:
        async with database.session_factory() as session:
            ad = Ad(**values)
            session.add(ad)
            await session.commit()
            return ad.id

    return run_db(_insert)


def seed_upload(**overrides: Any) -> str:
    values: dict[str, Any] = {"storage_path": "raw.mp4", "filename": "raw.mp4", "remote": False, "processed": False}
    values.update(overrides)

    async def _insert(database: db.Database) -> str:
        async with database.session_factory() as session:
            upload = AdUpload(**values)
            session.add(upload)
            await session.commit()
            return upload.id

    return run_db(_insert)


def seed_job(ad_id: str, **overrides: Any) -> str:
    values: dict[str, Any] = {"ad_id": ad_id, "type": AdJobType.REPOST, "interval_min": 60, "active": True}
    values.update(overrides)

    async def _insert(database: db.Database) -> str:
        async with database.session_factory() as session:
            job = AdJob(**values)
            session.add(job)
            await session.commit()
            return job.id

    return run_db(_insert)


def fetch(model: type, key: str):
    async def _get(database: db.Database):
        async with database.session_factory() as session:
            return await session.get(model, key)

    return run_db(_get)


def build_token(user_id: str | None, *, scopes: list[str] | None = None) -> str:
    payload: dict[str, Any] = {"iss": JWT_ISSUER, "aud": JWT_AUDIENCE}
    if scopes:
        payload["scopes"] = scopes
    if user_id:
        payload["sub"] = user_id
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def auth_headers(user_id: str | None, *, scopes: list[str] | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token(user_id, scopes=scopes)}"}


@pytest.fixture()
def user_headers() -> dict[str, str]:
    return auth_headers("user-1")


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return auth_headers("admin-1", scopes=["admin"])


@pytest.fixture(scope="session")
def generated_video_file(tmp_path_factory) -> Path:
    """A 12-second MP4 with a test pattern and a sine tone."""
    video_path = tmp_path_factory.mktemp("data") / "test_video.mp4"
    command = [
        "ffmpeg",
        "-v", "error",
        "-f", "lavfi",
        "-i", "testsrc=size=320x240:rate=25",
        "-f", "lavfi",
        "-i", "sine=frequency=440",
        "-t", "12",
        "-pix_fmt", "yuv420p",
        str(video_path),
    ]
    subprocess.run(command, check=True, capture_output=True)
    return video_path
