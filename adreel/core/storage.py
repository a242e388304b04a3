from __future__ import annotations

import mimetypes
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

import httpx

from .config import Settings
from .logging import get_logger


UploadSource = Path | bytes


@dataclass(slots=True)
class PresignedURL:
    url: str
    method: str = "GET"
    headers: dict[str, str] | None = None


class StorageError(RuntimeError):
    """Raised when an object store rejects an upload or URL request."""


class Storage(ABC):
    """Bucket/path object store used for raw uploads, processed videos and thumbnails.

    Paths are caller-chosen and are not checked for collisions; callers prefix
    them with a millisecond timestamp.
    """

    @abstractmethod
    def exists(self, bucket: str, path: str) -> bool: ...

    @abstractmethod
    def upload(self, bucket: str, path: str, source: UploadSource, *, content_type: str | None = None) -> str: ...

    @abstractmethod
    def public_url(self, bucket: str, path: str) -> str: ...

    @abstractmethod
    def presign_get(self, bucket: str, path: str, *, expires_s: int = 60) -> PresignedURL: ...


def _guess_content_type(path: str, content_type: str | None) -> str:
    if content_type:
        return content_type
    guessed, _ = mimetypes.guess_type(path)
    return guessed or "application/octet-stream"


class LocalStorage(Storage):
    """Filesystem-backed storage abstraction suitable for development."""

    def __init__(self, base_path: Path, public_base_url: str):
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")

    def _resolve(self, bucket: str, path: str) -> Path:
        root = (self.base_path / bucket).resolve()
        target = (root / path.lstrip("/")).resolve()
        if root != target and root not in target.parents:
            raise ValueError(f"Path escapes bucket: {bucket}/{path}")
        return target

    def exists(self, bucket: str, path: str) -> bool:
        return self._resolve(bucket, path).exists()

    def upload(self, bucket: str, path: str, source: UploadSource, *, content_type: str | None = None) -> str:
        target = self._resolve(bucket, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(source, Path):
            shutil.copyfile(source, target)
        else:
            target.write_bytes(source)
        return self.public_url(bucket, path)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.public_base_url}/{quote(bucket)}/{quote(path.lstrip('/'))}"

    def presign_get(self, bucket: str, path: str, *, expires_s: int = 60) -> PresignedURL:
        return PresignedURL(url=self._resolve(bucket, path).as_uri(), method="GET")


class SupabaseStorage(Storage):
    """Supabase Storage REST backend."""

    def __init__(self, base_url: str, service_key: str, *, timeout_s: float = 30.0, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=timeout_s)
        self.headers = {"apikey": service_key, "Authorization": f"Bearer {service_key}"}
        self.logger = get_logger(component="supabase_storage")

    def _object_url(self, *segments: str) -> str:
        return "/".join([f"{self.base_url}/storage/v1/object", *(quote(s.strip("/")) for s in segments)])

    def exists(self, bucket: str, path: str) -> bool:
        resp = self.client.head(self._object_url(bucket, path), headers=self.headers)
        return resp.status_code == 200

    def upload(self, bucket: str, path: str, source: UploadSource, *, content_type: str | None = None) -> str:
        payload = source.read_bytes() if isinstance(source, Path) else source
        headers = {**self.headers, "Content-Type": _guess_content_type(path, content_type)}
        resp = self.client.post(self._object_url(bucket, path), content=payload, headers=headers)
        if resp.status_code >= 400:
            self.logger.error("storage_upload_failed", bucket=bucket, path=path, status=resp.status_code)
            raise StorageError(f"upload to {bucket}/{path} failed: {resp.status_code} {resp.text}")
        return self.public_url(bucket, path)

    def public_url(self, bucket: str, path: str) -> str:
        return self._object_url("public", bucket, path)

    def presign_get(self, bucket: str, path: str, *, expires_s: int = 60) -> PresignedURL:
        resp = self.client.post(self._object_url("sign", bucket, path), json={"expiresIn": expires_s}, headers=self.headers)
        if resp.status_code >= 400:
            raise StorageError(f"signing {bucket}/{path} failed: {resp.status_code}")
        signed = resp.json().get("signedURL") or resp.json().get("signedUrl")
        if not signed:
            raise StorageError(f"signing {bucket}/{path} returned no URL")
        return PresignedURL(url=f"{self.base_url}/storage/v1{signed}", method="GET")


def get_storage(settings: Settings) -> Storage:
    if settings.storage_backend == "local":
        return LocalStorage(base_path=Path(settings.media_root), public_base_url=settings.public_media_base_url)
    if settings.storage_backend == "supabase":
        if not settings.supabase_url or not settings.secrets.supabase_service_key:
            raise ValueError("Supabase storage requires ADREEL_SUPABASE_URL and ADREEL_SUPABASE_SERVICE_KEY")
        return SupabaseStorage(
            settings.supabase_url,
            settings.secrets.supabase_service_key,
            timeout_s=settings.http_timeout_s,
        )
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "Storage",
    "LocalStorage",
    "SupabaseStorage",
    "StorageError",
    "PresignedURL",
    "UploadSource",
    "get_storage",
]
