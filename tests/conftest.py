"""Shared test fixtures for Licensary."""

import os
import pytest
from httpx import ASGITransport, AsyncClient

from licensary.common.exceptions import SheetSyncError


SECRET_KEY = "test-secret-key-for-unit-tests"
ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin-test-password"
PREFIX = "/api/v1"


class FakeMirror:
    """In-memory stand-in for the spreadsheet client.

    ``rows`` holds the data rows; ``rows[0]`` is sheet row 2.
    """

    def __init__(self, rows=None):
        self.rows = [list(r) for r in rows or []]
        self.fail = False
        self.calls: list[str] = []

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if self.fail:
            raise SheetSyncError("mirror unavailable")

    async def ensure_sheet(self):
        self._call("ensure_sheet")

    async def read_keys(self):
        self._call("read_keys")
        return [str(r[0]) if r else "" for r in self.rows]

    async def find_row(self, key):
        self._call("find_row")
        for offset, row in enumerate(self.rows):
            if row and row[0] == key:
                return offset + 2
        return None

    async def read_all(self):
        self._call("read_all")
        return [list(r) for r in self.rows]

    async def update_row(self, row_index, values):
        self._call("update_row")
        self.rows[row_index - 2] = list(values)

    async def append_rows(self, rows):
        self._call("append_rows")
        self.rows.extend(list(r) for r in rows)

    async def append_row(self, values):
        await self.append_rows([values])

    async def batch_update(self, rows):
        self._call("batch_update")
        for row_index, values in rows.items():
            self.rows[row_index - 2] = list(values)


@pytest.fixture
def mirror():
    return FakeMirror()


@pytest.fixture
def app():
    """Create a test app with in-memory DB."""
    os.environ["LICENSARY_DB_URL"] = "sqlite+aiosqlite://"
    os.environ["LICENSARY_SECRET_KEY"] = SECRET_KEY
    os.environ["LICENSARY_BOOTSTRAP_ADMIN_PASSWORD"] = ADMIN_PASSWORD
    os.environ["LICENSARY_SHEETS_ENABLED"] = "false"

    # Clear caches and singletons so new env vars take effect
    from licensary.common.config import get_settings
    get_settings.cache_clear()

    from licensary.deps import reset_singletons
    reset_singletons()

    from licensary.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from licensary.deps import get_db, get_user_service
    db = get_db()
    await db.init()
    await db.create_all()
    async with db.get_session() as session:
        await get_user_service().ensure_admin(session)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


async def login(client, username: str, password: str) -> dict:
    resp = await client.post(f"{PREFIX}/users/login", json={
        "username": username, "password": password,
    })
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture
async def admin_headers(client):
    return await login(client, ADMIN_USERNAME, ADMIN_PASSWORD)


@pytest.fixture
async def user_headers(client):
    resp = await client.post(f"{PREFIX}/users/register", json={
        "username": "alice", "password": "alice-password", "email": "alice@example.com",
    })
    assert resp.status_code == 201, resp.text
    return await login(client, "alice", "alice-password")


@pytest.fixture
def login_as(client):
    async def _login(username: str, password: str) -> dict:
        return await login(client, username, password)
    return _login
