"""Tests for push, pull and export between the store and the mirror."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from licensary.common.config import LicensarySettings
from licensary.common.database import DatabaseManager
from licensary.common.exceptions import PullInProgressError, SheetSyncError
from licensary.common.models import as_utc, utcnow
from licensary.licensing.models import LicenseModel
from licensary.sheets.codec import LicenseSnapshot
from licensary.sheets.engine import SyncEngine


def make_settings(**overrides) -> LicensarySettings:
    defaults = {"db_url": "sqlite+aiosqlite://"}
    defaults.update(overrides)
    return LicensarySettings(**defaults)


@pytest.fixture
async def db():
    manager = DatabaseManager(make_settings())
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def engine(db, mirror):
    return SyncEngine(make_settings(), db, mirror)


def sheet_row(key, status="active", user_id="u1", product_id="p1", valid_until="2030-01-01T00:00:00Z"):
    return [
        key, status, valid_until, user_id, product_id, "1.0",
        "2026-01-01T00:00:00Z", "2025-12-01T00:00:00Z", "2026-01-01T00:00:00Z",
    ]


def snapshot(key="K1", status="active", **overrides):
    now = utcnow()
    fields = dict(
        key=key, status=status, valid_until=now + timedelta(days=30),
        user_id="u1", product_id="p1", version="1.0", permissions="read",
        issued_to=0, last_activated_at=now, created_at=now, updated_at=now,
    )
    fields.update(overrides)
    return LicenseSnapshot(**fields)


async def _keys(db):
    async with db.get_session() as session:
        result = await session.execute(select(LicenseModel.key).order_by(LicenseModel.key))
        return list(result.scalars().all())


async def _get(db, key):
    async with db.get_session() as session:
        return await session.get(LicenseModel, key)


# ── Push ──


class TestPush:
    async def test_absent_key_appends(self, engine, mirror, db):
        outcome = await engine.push(snapshot("K1"))
        assert outcome == "appended"
        assert len(mirror.rows) == 1
        assert mirror.rows[0][0] == "K1"
        assert await _keys(db) == ["K1"]

    async def test_present_key_updates_in_place(self, engine, mirror):
        mirror.rows = [sheet_row("K0"), sheet_row("K1", status="inactive"), sheet_row("K2")]
        outcome = await engine.push(snapshot("K1", status="suspended"))
        assert outcome == "updated"
        assert len(mirror.rows) == 3
        assert mirror.rows[1][:2] == ["K1", "suspended"]

    async def test_updates_existing_store_row(self, engine, db):
        await engine.push(snapshot("K1", version="1.0"))
        await engine.push(snapshot("K1", version="2.0", status="suspended"))
        lic = await _get(db, "K1")
        assert lic.version == "2.0"
        assert lic.status == "suspended"

    async def test_mirror_failure_keeps_store_write(self, engine, mirror, db):
        mirror.fail = True
        with pytest.raises(SheetSyncError):
            await engine.push(snapshot("K1"))
        assert await _keys(db) == ["K1"]


# ── Pull ──


class TestPull:
    async def test_replaces_table(self, engine, mirror, db):
        await engine.push(snapshot("LOCAL-ONLY"))
        mirror.rows = [sheet_row("A"), sheet_row("B")]
        result = await engine.pull()
        assert result.inserted == 2
        assert await _keys(db) == ["A", "B"]

    async def test_duplicate_keys_last_wins(self, engine, mirror, db):
        mirror.rows = [
            sheet_row("A", user_id="first"),
            sheet_row("B"),
            sheet_row("A", user_id="second"),
        ]
        result = await engine.pull()
        assert result.inserted == 2
        assert result.duplicates == ["A"]
        assert await _keys(db) == ["A", "B"]
        assert (await _get(db, "A")).user_id == "second"

    async def test_malformed_row_skipped(self, engine, mirror, db):
        mirror.rows = [
            sheet_row("A"),
            sheet_row("BAD", valid_until="not-a-timestamp"),
            sheet_row("C"),
            ["SHORT", "active", "2030-01-01T00:00:00Z"],
        ]
        result = await engine.pull()
        assert result.rows_read == 4
        assert result.inserted == 2
        assert [s.row_number for s in result.skipped] == [3, 5]
        assert await _keys(db) == ["A", "C"]

    async def test_parses_mirror_values(self, engine, mirror, db):
        mirror.rows = [sheet_row("A", status="Suspended", valid_until="2030-06-01T12:00:00Z")]
        await engine.pull()
        lic = await _get(db, "A")
        assert lic.status == "suspended"
        assert as_utc(lic.valid_until) == datetime(2030, 6, 1, 12, tzinfo=timezone.utc)
        assert as_utc(lic.created_at) == datetime(2025, 12, 1, tzinfo=timezone.utc)

    async def test_carries_over_unmirrored_columns(self, engine, mirror, db):
        await engine.push(snapshot("A", permissions="admin", issued_to=7))
        mirror.rows = [sheet_row("A"), sheet_row("B")]
        await engine.pull()
        a = await _get(db, "A")
        b = await _get(db, "B")
        assert (a.permissions, a.issued_to) == ("admin", 7)
        assert (b.permissions, b.issued_to) == ("", 0)

    async def test_empty_mirror_aborts(self, engine, mirror, db):
        await engine.push(snapshot("A"))
        mirror.rows = []
        result = await engine.pull()
        assert result.aborted is True
        assert await _keys(db) == ["A"]

    async def test_empty_mirror_allowed_when_configured(self, db, mirror):
        engine = SyncEngine(make_settings(sheets_allow_empty_pull=True), db, mirror)
        await engine.push(snapshot("A"))
        mirror.rows = []
        result = await engine.pull()
        assert result.aborted is False
        assert await _keys(db) == []

    async def test_read_failure_leaves_table(self, engine, mirror, db):
        await engine.push(snapshot("A"))
        mirror.fail = True
        with pytest.raises(SheetSyncError):
            await engine.pull()
        assert await _keys(db) == ["A"]

    async def test_large_pull_batches(self, engine, mirror, db):
        mirror.rows = [sheet_row(f"K{i:04d}") for i in range(250)]
        result = await engine.pull()
        assert result.inserted == 250
        async with db.get_session() as session:
            count = (await session.execute(select(func.count()).select_from(LicenseModel))).scalar()
        assert count == 250

    async def test_concurrent_pull_rejected(self, engine, mirror):
        release = asyncio.Event()
        original_read_all = mirror.read_all

        async def slow_read_all():
            await release.wait()
            return await original_read_all()

        mirror.read_all = slow_read_all
        mirror.rows = [sheet_row("A")]
        first = asyncio.create_task(engine.pull())
        await asyncio.sleep(0)
        assert engine.pull_running
        with pytest.raises(PullInProgressError):
            await engine.pull()
        release.set()
        result = await first
        assert result.inserted == 1
        assert not engine.pull_running

    async def test_last_pull_recorded(self, engine, mirror):
        mirror.rows = [sheet_row("A")]
        result = await engine.pull()
        assert engine.last_pull is result
        assert result.finished_at is not None


# ── Export ──


class TestExportAll:
    async def test_updates_present_and_appends_missing(self, engine, mirror, db):
        async with db.get_session() as session:
            for key in ("A", "B", "C"):
                session.add(SyncEngine._to_model(snapshot(key, version="9")))
        mirror.rows = [sheet_row("B", status="inactive"), sheet_row("X")]

        result = await engine.export_all()

        assert (result.updated, result.appended) == (1, 2)
        assert [r[0] for r in mirror.rows] == ["B", "X", "A", "C"]
        assert mirror.rows[0][5] == "9"
        assert mirror.calls.count("read_keys") == 1
        assert mirror.calls.count("find_row") == 0

    async def test_empty_store(self, engine, mirror):
        result = await engine.export_all()
        assert (result.updated, result.appended) == (0, 0)
        assert mirror.rows == []
