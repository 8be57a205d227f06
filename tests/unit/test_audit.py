"""Tests for the operation log."""

import pytest

from licensary.audit.service import AuditService
from licensary.common.config import LicensarySettings
from licensary.common.database import DatabaseManager


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
def audit_svc():
    return AuditService(make_settings())


class TestRecordOperation:
    async def test_record(self, db, audit_svc):
        async with db.get_session() as session:
            entry = await audit_svc.record_operation(
                session, 1, "license.update", target="license", target_id="K1",
                details={"version": "2"},
            )
        assert entry.id is not None
        assert entry.details == {"version": "2"}

    async def test_details_default_empty(self, db, audit_svc):
        async with db.get_session() as session:
            entry = await audit_svc.record_operation(session, 1, "sync.pull")
        assert entry.details == {}


class TestListOperations:
    async def test_newest_first_and_filters(self, db, audit_svc):
        async with db.get_session() as session:
            await audit_svc.record_operation(session, 1, "license.generate", target_id="A")
            await audit_svc.record_operation(session, 2, "license.delete", target_id="B")
            await audit_svc.record_operation(session, 1, "license.delete", target_id="C")

        async with db.get_session() as session:
            entries, total = await audit_svc.list_operations(session)
            assert total == 3
            assert [e.target_id for e in entries] == ["C", "B", "A"]

            entries, total = await audit_svc.list_operations(session, user_id=1)
            assert total == 2

            entries, total = await audit_svc.list_operations(session, action="license.delete")
            assert {e.target_id for e in entries} == {"B", "C"}

    async def test_pagination(self, db, audit_svc):
        async with db.get_session() as session:
            for i in range(5):
                await audit_svc.record_operation(session, 1, "license.update", target_id=str(i))
        async with db.get_session() as session:
            entries, total = await audit_svc.list_operations(session, offset=2, limit=2)
        assert total == 5
        assert len(entries) == 2
