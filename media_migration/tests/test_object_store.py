"""Tests for the destination object stores."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from media_migration.assets.object_store import (
    FilesystemObjectStore,
    HttpObjectStore,
    ObjectStoreError,
    build_object_store,
    normalize_object_path,
)
from media_migration.config import MigrationSettings


def test_normalize_object_path():
    assert normalize_object_path("a/b/c.jpg") == "a/b/c.jpg"
    assert normalize_object_path("a\\b.jpg") == "a/b.jpg"
    for bad in ("", "  ", "/abs.jpg", "a/../b.jpg", "../a.jpg"):
        with pytest.raises(ValueError):
            normalize_object_path(bad)


@pytest.mark.asyncio
async def test_filesystem_store_writes_and_overwrites(tmp_path: Path):
    store = FilesystemObjectStore(tmp_path, "http://cdn.test/objects/")

    first = await store.store(b"one", "external-units/u1/photos/hd/m1.jpg", "image/jpeg")
    assert first.ok
    assert first.url == "http://cdn.test/objects/external-units/u1/photos/hd/m1.jpg"
    assert first.path == "external-units/u1/photos/hd/m1.jpg"

    second = await store.store(b"two", "external-units/u1/photos/hd/m1.jpg", "image/jpeg")
    assert second.ok
    target = tmp_path / "external-units" / "u1" / "photos" / "hd" / "m1.jpg"
    assert target.read_bytes() == b"two"
    assert [p.name for p in target.parent.iterdir()] == ["m1.jpg"]


@pytest.mark.asyncio
async def test_filesystem_store_rejects_traversal(tmp_path: Path):
    store = FilesystemObjectStore(tmp_path / "root", "http://cdn.test")
    result = await store.store(b"x", "../escape.jpg", "image/jpeg")
    assert not result.ok
    assert not (tmp_path / "escape.jpg").exists()


def test_filesystem_store_requires_public_url(tmp_path: Path):
    with pytest.raises(ObjectStoreError):
        FilesystemObjectStore(tmp_path, "")


@pytest.mark.asyncio
async def test_http_store_puts_object():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    store = HttpObjectStore(
        "https://storage.test/upload/",
        "media",
        public_url="https://cdn.test",
        token="tok",
        client=client,
    )
    result = await store.store(b"data", "external-units/u/photos/hd/m.png", "image/png")
    await client.aclose()

    assert result.ok
    assert result.url == "https://cdn.test/media/external-units/u/photos/hd/m.png"
    assert seen[0].method == "PUT"
    assert str(seen[0].url) == "https://storage.test/upload/media/external-units/u/photos/hd/m.png"
    assert seen[0].headers["Content-Type"] == "image/png"
    assert seen[0].headers["Authorization"] == "Bearer tok"
    assert seen[0].content == b"data"


@pytest.mark.asyncio
async def test_http_store_failure_is_a_result():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    store = HttpObjectStore("https://storage.test", "media", client=client)
    result = await store.store(b"data", "a.jpg", "image/jpeg")
    await client.aclose()

    assert not result.ok
    assert "503" in result.error


def test_build_object_store_backends(tmp_path: Path):
    fs = build_object_store(
        MigrationSettings(_env_file=None, object_store_dir=str(tmp_path), object_store_backend="filesystem")
    )
    assert isinstance(fs, FilesystemObjectStore)
    assert fs.root_dir == tmp_path

    with pytest.raises(ObjectStoreError):
        build_object_store(MigrationSettings(_env_file=None, object_store_backend="http"))

    with pytest.raises(ObjectStoreError):
        build_object_store(MigrationSettings(_env_file=None, object_store_backend="ftp"))
