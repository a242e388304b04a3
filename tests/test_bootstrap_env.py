from __future__ import annotations

import asyncio
import os
from pathlib import Path

import jwt
import pytest
from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, inspect
from sqlalchemy.ext.asyncio import create_async_engine

from adreel.core.config import get_settings
from adreel.core.db import Base
from adreel.main import create_app

DEV_SECRET = "dev-secret"
DEV_AUDIENCE = "adreel"
DEV_ISSUER = "adreel-local"

# Keys written by the .env file or by the alias mapping in get_settings.
_MANAGED_KEYS = (
    "ADREEL_ENV",
    "ADREEL_ENVIRONMENT",
    "ADREEL_LOG_LEVEL",
    "ADREEL_JWT_SECRET",
    "ADREEL_JWT_ISSUER",
    "ADREEL_JWT_AUDIENCE",
    "ADREEL_STORAGE_BACKEND",
    "ADREEL_MEDIA_ROOT",
    "ADREEL_DB_URL",
    "ADREEL_DATABASE_URL",
    "ADREEL_JOB_BACKEND",
    "ADREEL_JOB_QUEUE_BACKEND",
    "ADREEL_MAX_DURATION_S",
)


pytestmark = pytest.mark.no_default_env


def _write_env(target_dir: Path, *, environment: str, jwt_secret: str | None = DEV_SECRET) -> Path:
    target_dir.mkdir(parents=True, exist_ok=True)
    lines = [
        f"ADREEL_ENV={environment}",
        "ADREEL_LOG_LEVEL=debug",
        f"ADREEL_JWT_ISSUER={DEV_ISSUER}",
        f"ADREEL_JWT_AUDIENCE={DEV_AUDIENCE}",
        "ADREEL_STORAGE_BACKEND=local",
        "ADREEL_MEDIA_ROOT=media",
        "ADREEL_DB_URL=sqlite+aiosqlite:///./adreel.db",
        "ADREEL_JOB_BACKEND=inline",
        "ADREEL_MAX_DURATION_S=10",
    ]
    if jwt_secret:
        lines.append(f"ADREEL_JWT_SECRET={jwt_secret}")
    env_path = target_dir / ".env"
    env_path.write_text("\n".join(lines))
    return env_path


def _isolate(monkeypatch: pytest.MonkeyPatch, target_dir: Path) -> None:
    for key in list(os.environ.keys()):
        if key.startswith("ADREEL_"):
            monkeypatch.delenv(key, raising=False)
    # Registering each key makes monkeypatch remove whatever load_dotenv writes.
    for key in _MANAGED_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.chdir(target_dir)
    get_settings.cache_clear()


async def _initialise_sqlite(database_url: str) -> None:
    engine = create_async_engine(database_url, echo=False, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


def _prepare_app(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, *, environment: str) -> TestClient:
    _write_env(tmp_path, environment=environment)
    _isolate(monkeypatch, tmp_path)
    asyncio.run(_initialise_sqlite("sqlite+aiosqlite:///./adreel.db"))
    app = create_app()
    client = TestClient(app)
    client.__enter__()
    return client


def test_settings_come_from_dotenv_and_aliases(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    _write_env(tmp_path, environment="development")
    _isolate(monkeypatch, tmp_path)

    settings = get_settings()

    assert settings.environment == "development"
    assert settings.database_url == "sqlite+aiosqlite:///./adreel.db"
    assert settings.normalized_job_backend == "immediate"
    assert settings.max_duration_s == 10
    assert settings.secrets.jwt_secret == DEV_SECRET


def test_production_rejects_default_jwt_secret(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    _write_env(tmp_path, environment="production", jwt_secret=None)
    _isolate(monkeypatch, tmp_path)
    with pytest.raises(ValueError):
        get_settings()


def test_env_boots_without_shell_exports(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    client = _prepare_app(tmp_path, monkeypatch, environment="development")
    try:
        response = client.get("/v1/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["storage_backend"] == "local"
    finally:
        client.__exit__(None, None, None)


def test_dev_token_endpoint_only_in_dev(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    client = _prepare_app(tmp_path, monkeypatch, environment="development")
    try:
        response = client.post("/v1/admin/dev-token", json={"user_id": "user-1", "scopes": ["admin"]})
        assert response.status_code == 200
        decoded = jwt.decode(
            response.json()["token"],
            DEV_SECRET,
            algorithms=["HS256"],
            audience=DEV_AUDIENCE,
            issuer=DEV_ISSUER,
        )
        assert decoded["sub"] == "user-1"
        assert decoded["scopes"] == ["admin"]

        headers = {"Authorization": f"Bearer {response.json()['token']}"}
        assert client.get("/v1/admin/env-check", headers=headers).status_code == 200
    finally:
        client.__exit__(None, None, None)

    prod_client = _prepare_app(tmp_path / "prod", monkeypatch, environment="production")
    try:
        response = prod_client.post("/v1/admin/dev-token", json={"user_id": "user-1"})
        assert response.status_code == 403
    finally:
        prod_client.__exit__(None, None, None)


def test_alembic_upgrade_builds_schema(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    root = Path(__file__).resolve().parents[1]
    assert Config(str(root / "alembic.ini")).get_main_option("prepend_sys_path") == "."

    _isolate(monkeypatch, tmp_path)
    db_path = tmp_path / "migrated.db"
    monkeypatch.setenv("ADREEL_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    config = Config()
    config.set_main_option("script_location", str(root / "migrations"))
    config.set_main_option("prepend_sys_path", str(root))

    command.upgrade(config, "head")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert {"ads", "tags", "ad_tags", "ad_uploads", "ad_jobs", "alembic_version"} <= tables
