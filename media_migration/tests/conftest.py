"""Async test fixtures for migration tests using SQLite."""

from __future__ import annotations

import uuid

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from typer.testing import CliRunner

from media_migration.assets.results import FetchResult, StoreResult
from media_migration.models.agency import Agency
from media_migration.models.base import Base
from media_migration.models.media import MEDIA_TYPE_PHOTO, UnitMedia
from media_migration.models.unit import Unit
from media_migration.services.store_svc import MigrationStore


class FakeSource:
    """In-memory source; refs in `failing` come back as download failures."""

    def __init__(self):
        self.calls: list[str] = []
        self.failing: set[str] = set()
        self.raising: set[str] = set()
        self.content_types: dict[str, str | None] = {}

    async def fetch(self, source_ref: str) -> FetchResult:
        self.calls.append(source_ref)
        if source_ref in self.raising:
            raise RuntimeError(f"source exploded on {source_ref}")
        if source_ref in self.failing:
            return FetchResult.failure(f"HTTP 404: {source_ref}")
        content_type = self.content_types.get(source_ref, "image/jpeg")
        return FetchResult.success(f"bytes-{source_ref}".encode(), content_type=content_type)

    async def aclose(self) -> None:
        return None


class FakeDestination:
    """In-memory destination keyed by object path."""

    def __init__(self, base_url: str = "https://cdn.test"):
        self.base_url = base_url
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.fail_all = False

    @property
    def calls(self) -> int:
        return len(self.objects)

    async def store(self, data: bytes, path: str, content_type: str) -> StoreResult:
        if self.fail_all:
            return StoreResult.failure("bucket unavailable", path=path)
        self.objects[path] = data
        self.content_types[path] = content_type
        return StoreResult.success(f"{self.base_url}/{path}", path)

    async def aclose(self) -> None:
        return None


class UnreachableDoneStore(MigrationStore):
    """Store whose `mark_done` fails as if the database went away."""

    async def mark_done(self, media_id, destination_ref, destination_path):
        raise OperationalError("UPDATE unit_media", {}, Exception("database is locked"))


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def agency(db: AsyncSession):
    row = Agency(id=uuid.uuid4(), name="Test Agency", slug="test-agency")
    db.add(row)
    await db.commit()
    await db.refresh(row)
    return row


@pytest_asyncio.fixture
async def unit(db: AsyncSession, agency: Agency):
    row = Unit(id=uuid.uuid4(), agency_id=agency.id, name="Unit 1A")
    db.add(row)
    await db.commit()
    await db.refresh(row)
    return row


@pytest.fixture
def make_media(db: AsyncSession):
    """Factory: insert one photo (committed) and return it."""
    counter = {"n": 0}

    async def _make(unit: Unit, **kwargs) -> UnitMedia:
        counter["n"] += 1
        values = {
            "unit_id": unit.id,
            "media_type": MEDIA_TYPE_PHOTO,
            "source_ref": f"drive-file-{counter['n']}",
            "mime_type": "image/jpeg",
            "file_name": f"photo-{counter['n']}.jpg",
        }
        values.update(kwargs)
        row = UnitMedia(**values)
        db.add(row)
        await db.commit()
        await db.refresh(row)
        return row

    return _make


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def fake_destination():
    return FakeDestination()


@pytest.fixture
def cli_runner():
    return CliRunner()
