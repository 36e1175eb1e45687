"""Destination object stores for migrated photos.

Two backends share one contract, `store(data, path, content_type)`:
  - `FilesystemObjectStore` writes under a local root (atomic rename) and
    serves references from a configured public base URL.
  - `HttpObjectStore` PUTs bytes to a bucket endpoint.

Both return a `StoreResult`; upload failures are values, not exceptions.
Misconfiguration is raised as `ObjectStoreError` at construction time.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path, PurePosixPath

import httpx

from ..config import MigrationSettings
from .results import StoreResult

logger = logging.getLogger(__name__)


class ObjectStoreError(Exception):
    pass


def normalize_object_path(path: str) -> str:
    """Validate a relative, slash-separated object path.

    Raises ValueError for empty, absolute or traversing paths.
    """
    if not isinstance(path, str) or not path.strip():
        raise ValueError("object path required")
    cleaned = path.strip().replace("\\", "/")
    if cleaned.startswith("/"):
        raise ValueError(f"object path must be relative: {path!r}")
    parts = PurePosixPath(cleaned).parts
    if not parts or any(part in ("", ".", "..") for part in parts):
        raise ValueError(f"invalid object path: {path!r}")
    return "/".join(parts)


class ObjectStore:
    """Base class; subclasses implement `_put`."""

    async def store(self, data: bytes, path: str, content_type: str) -> StoreResult:
        try:
            key = normalize_object_path(path)
        except ValueError as e:
            return StoreResult.failure(str(e), path=path)
        if data is None:
            return StoreResult.failure("no data to upload", path=key)
        return await self._put(data, key, content_type)

    async def _put(self, data: bytes, key: str, content_type: str) -> StoreResult:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class FilesystemObjectStore(ObjectStore):
    """Path-addressed local object store.

    Layout: <root_dir>/<object path>
    """

    def __init__(self, root_dir: str | Path, public_url: str):
        if not isinstance(public_url, str) or not public_url.strip():
            raise ObjectStoreError("object store public URL required")
        self.root_dir = Path(root_dir)
        self.public_url = public_url.strip().rstrip("/")

    def path_for(self, key: str) -> Path:
        return self.root_dir / key

    def url_for(self, key: str) -> str:
        return f"{self.public_url}/{key}"

    def _write_atomic(self, dest: Path, data: bytes) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd = None
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=f"{dest.name}.tmp.", dir=str(dest.parent))
            with os.fdopen(fd, "wb") as f:
                fd = None
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            # Re-running an item overwrites the previous upload in place.
            os.replace(tmp_path, dest)
            tmp_path = None
        finally:
            if fd is not None:
                try:
                    os.close(fd)
                except OSError:
                    pass
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass

    async def _put(self, data: bytes, key: str, content_type: str) -> StoreResult:
        try:
            self._write_atomic(self.path_for(key), bytes(data))
        except OSError as e:
            logger.warning("Object write failed for %s: %s", key, e)
            return StoreResult.failure(f"write failed: {e}", path=key)
        return StoreResult.success(self.url_for(key), key)


class HttpObjectStore(ObjectStore):
    """Bucket-style HTTP object store (PUT <upload_url>/<bucket>/<path>)."""

    def __init__(
        self,
        upload_url: str,
        bucket: str,
        *,
        public_url: str | None = None,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 60.0,
    ):
        if not isinstance(upload_url, str) or not upload_url.strip():
            raise ObjectStoreError("object store upload URL required")
        if not isinstance(bucket, str) or not bucket.strip():
            raise ObjectStoreError("object store bucket required")
        self.upload_url = upload_url.strip().rstrip("/")
        self.bucket = bucket.strip().strip("/")
        self.public_url = (public_url or self.upload_url).strip().rstrip("/")
        self.token = token

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    def url_for(self, key: str) -> str:
        return f"{self.public_url}/{self.bucket}/{key}"

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _put(self, data: bytes, key: str, content_type: str) -> StoreResult:
        headers = {"Content-Type": content_type or "application/octet-stream"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            response = await self.client.put(
                f"{self.upload_url}/{self.bucket}/{key}",
                content=bytes(data),
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("Upload failed for %s: HTTP %s", key, e.response.status_code)
            return StoreResult.failure(f"upload failed ({e.response.status_code})", path=key)
        except httpx.HTTPError as e:
            logger.warning("Upload failed for %s: %s", key, e)
            return StoreResult.failure(f"upload failed: {e}", path=key)
        return StoreResult.success(self.url_for(key), key)


def build_object_store(settings: MigrationSettings) -> ObjectStore:
    backend = (settings.object_store_backend or "").strip().lower()
    if backend == "filesystem":
        return FilesystemObjectStore(settings.object_store_path, settings.object_store_public_url)
    if backend == "http":
        return HttpObjectStore(
            settings.object_store_upload_url or "",
            settings.object_store_bucket,
            public_url=settings.object_store_public_url,
            token=settings.object_store_token,
            timeout_seconds=settings.object_store_timeout_seconds,
        )
    raise ObjectStoreError(f"unknown object store backend: {settings.object_store_backend!r}")
