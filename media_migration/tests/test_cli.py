"""CLI tests (typer CliRunner against a temporary SQLite database)."""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from media_migration import cli
from media_migration.config import settings
from media_migration.models.agency import Agency
from media_migration.models.base import Base
from media_migration.models.media import UnitMedia
from media_migration.models.unit import Unit
from media_migration.services.store_svc import MigrationStore

from .conftest import FakeDestination, FakeSource, UnreachableDoneStore


@pytest.fixture
def session_factory(tmp_path: Path, monkeypatch):
    # NullPool: each asyncio.run() gets its own connection.
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}", poolclass=NullPool)

    async def _create():
        async with eng.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create())
    factory = async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(cli, "async_session_factory", factory)
    yield factory
    asyncio.run(eng.dispose())


def _seed(factory, *, photos: int = 3, status: str = "none", failing: bool = False) -> dict:
    async def _go():
        async with factory() as db:
            agency = Agency(name="Acme Lettings", slug="acme")
            db.add(agency)
            await db.flush()
            unit = Unit(agency_id=agency.id, name="Flat 2")
            db.add(unit)
            await db.flush()
            ids = []
            for n in range(photos):
                media = UnitMedia(
                    unit_id=unit.id,
                    source_ref=f"drive-{n}",
                    mime_type="image/jpeg",
                    migration_status=status,
                    migration_error="boom" if status == "error" else None,
                )
                db.add(media)
                await db.flush()
                ids.append(media.id)
            await db.commit()
            return {"agency_id": agency.id, "unit_id": unit.id, "media_ids": ids}

    return asyncio.run(_go())


def _counts(factory, agency_id=None):
    async def _go():
        async with factory() as db:
            return await MigrationStore(db).get_status_counts(agency_id)

    return asyncio.run(_go())


def test_run_migrates_pending_photos(cli_runner, session_factory, monkeypatch):
    _seed(session_factory, photos=3)
    source, destination = FakeSource(), FakeDestination()
    monkeypatch.setattr(cli, "_build_source", lambda: source)
    monkeypatch.setattr(cli, "_build_destination", lambda: destination)

    result = cli_runner.invoke(cli.app, ["run", "--batch=2", "--delay", "0"])

    assert result.exit_code == 0, result.output
    assert "Marked 3 photos as pending" in result.output
    assert "Batch 2 complete" in result.output
    assert "Script finished successfully" in result.output
    counts = _counts(session_factory)
    assert counts.done == 3
    assert len(source.calls) == 3


def test_run_dry_run_needs_no_credentials(cli_runner, session_factory, monkeypatch):
    _seed(session_factory, photos=2, status="pending")

    def _no_source():
        raise AssertionError("dry run must not build adapters")

    monkeypatch.setattr(cli, "_build_source", _no_source)
    monkeypatch.setattr(cli, "_build_destination", _no_source)

    result = cli_runner.invoke(cli.app, ["run", "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "DRY RUN" in result.output
    assert _counts(session_factory).pending == 2


def test_run_missing_credentials_exits_2(cli_runner, session_factory, monkeypatch):
    for name in (
        "google_drive_access_token",
        "google_drive_refresh_token",
        "google_client_id",
        "google_client_secret",
    ):
        monkeypatch.setattr(settings, name, None)

    result = cli_runner.invoke(cli.app, ["run"])

    assert result.exit_code == 2
    assert "credentials not configured" in result.output


def test_run_agency_by_slug(cli_runner, session_factory, monkeypatch):
    seeded = _seed(session_factory, photos=2)
    monkeypatch.setattr(cli, "_build_source", FakeSource)
    monkeypatch.setattr(cli, "_build_destination", FakeDestination)

    result = cli_runner.invoke(cli.app, ["run", "--agency", "acme", "--delay", "0"])

    assert result.exit_code == 0, result.output
    assert _counts(session_factory, seeded["agency_id"]).done == 2


def test_unknown_agency_exits_2(cli_runner, session_factory):
    result = cli_runner.invoke(cli.app, ["status", "--agency", "nobody"])
    assert result.exit_code == 2
    assert "Agency not found" in result.output


def test_status_shows_counts(cli_runner, session_factory):
    seeded = _seed(session_factory, photos=2, status="pending")

    result = cli_runner.invoke(cli.app, ["status", "--agency", str(seeded["agency_id"])])

    assert result.exit_code == 0, result.output
    assert "pending" in result.output
    assert "total" in result.output


def test_requeue_and_errors(cli_runner, session_factory):
    _seed(session_factory, photos=2, status="error")

    listed = cli_runner.invoke(cli.app, ["errors"])
    assert listed.exit_code == 0, listed.output
    assert "boom" in listed.output

    result = cli_runner.invoke(cli.app, ["requeue", "--stale-minutes", "0"])
    assert result.exit_code == 0, result.output
    assert "Re-queued 2 photos" in result.output
    assert _counts(session_factory).pending == 2

    empty = cli_runner.invoke(cli.app, ["errors"])
    assert "No photos in error" in empty.output


def test_logs_after_run(cli_runner, session_factory, monkeypatch):
    _seed(session_factory, photos=1, status="pending")
    monkeypatch.setattr(cli, "_build_source", FakeSource)
    monkeypatch.setattr(cli, "_build_destination", FakeDestination)

    assert cli_runner.invoke(cli.app, ["logs"]).output.strip() == "No migration logs yet"
    cli_runner.invoke(cli.app, ["run", "--delay", "0"])

    result = cli_runner.invoke(cli.app, ["logs"])
    assert result.exit_code == 0, result.output
    assert "done" in result.output


def test_run_rejects_zero_batch(cli_runner, session_factory):
    result = cli_runner.invoke(cli.app, ["run", "--batch", "0"])
    assert result.exit_code == 2


def test_version(cli_runner):
    result = cli_runner.invoke(cli.app, ["version"])
    assert result.exit_code == 0
    assert "media-migration v" in result.output


def test_agency_uuid_is_passed_through():
    agency_id = uuid.uuid4()
    assert asyncio.run(cli._resolve_agency(None, str(agency_id))) == agency_id
    assert asyncio.run(cli._resolve_agency(None, None)) is None


def test_database_error_exits_1(cli_runner, session_factory, monkeypatch):
    _seed(session_factory, photos=2, status="pending")
    source = FakeSource()
    monkeypatch.setattr(cli, "_build_source", lambda: source)
    monkeypatch.setattr(cli, "_build_destination", FakeDestination)
    monkeypatch.setattr(cli, "_store", lambda db: UnreachableDoneStore(db))

    result = cli_runner.invoke(cli.app, ["run", "--delay", "0"])

    assert result.exit_code == 1
    assert isinstance(result.exception, OperationalError)
    assert "Script finished successfully" not in result.output
    assert source.calls == ["drive-0"]


def test_status_shows_latest_run(cli_runner, session_factory, monkeypatch):
    _seed(session_factory, photos=2)

    before = cli_runner.invoke(cli.app, ["status"])
    assert before.exit_code == 0, before.output
    assert "No migration runs recorded" in before.output

    monkeypatch.setattr(cli, "_build_source", FakeSource)
    monkeypatch.setattr(cli, "_build_destination", FakeDestination)
    assert cli_runner.invoke(cli.app, ["run", "--delay", "0"]).exit_code == 0

    after = cli_runner.invoke(cli.app, ["status"])
    assert after.exit_code == 0, after.output
    assert "Latest migration run" in after.output
    assert "completed" in after.output
    assert "2 ok" in after.output
