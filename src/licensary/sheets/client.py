"""Async client for the spreadsheet mirror (Google Sheets v4 REST API)."""

import asyncio
import logging
from typing import Any, Awaitable, Callable
from urllib.parse import quote

import httpx

from licensary.common.exceptions import SheetSyncError
from licensary.sheets.codec import FIRST_COLUMN, FIRST_DATA_ROW, LAST_COLUMN

logger = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"

# Cell writes are interpreted as if typed by a user, so the service may
# turn numeric-looking strings into numbers.
VALUE_INPUT_OPTION = "USER_ENTERED"

TokenProvider = Callable[[], Awaitable[str]]


class ServiceAccountTokenProvider:
    """Supplies OAuth access tokens from a service-account JSON file."""

    def __init__(self, credentials_path: str):
        self.credentials_path = credentials_path
        self._credentials = None

    async def __call__(self) -> str:
        from google.auth.exceptions import GoogleAuthError
        from google.auth.transport.requests import Request
        from google.oauth2 import service_account

        try:
            if self._credentials is None:
                self._credentials = service_account.Credentials.from_service_account_file(
                    self.credentials_path, scopes=[SHEETS_SCOPE],
                )
            if not self._credentials.valid:
                # google-auth refreshes synchronously
                await asyncio.to_thread(self._credentials.refresh, Request())
        except (GoogleAuthError, OSError, ValueError) as exc:
            raise SheetSyncError(f"Could not load sheet credentials: {exc}") from exc
        return self._credentials.token


class SheetsClient:
    """Row-addressed access to one named sheet.

    Every request carries a bounded timeout; transport failures, timeouts
    and non-2xx replies all surface as :class:`SheetSyncError`.
    """

    def __init__(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        token_provider: TokenProvider,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self._token_provider = token_provider
        self._base_url = f"{SHEETS_API}/{spreadsheet_id}"
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._sheet_verified = False

    def a1(self, cells: str) -> str:
        """Qualify an A1 range with the quoted sheet name."""
        name = self.sheet_name.replace("'", "''")
        return f"'{name}'!{cells}"

    def _values_path(self, cells: str, suffix: str = "") -> str:
        return f"/values/{quote(self.a1(cells), safe='')}{suffix}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        token = await self._token_provider()
        headers = {"Authorization": f"Bearer {token}"}
        try:
            resp = await self._http.request(
                method, f"{self._base_url}{path}", headers=headers, **kwargs,
            )
        except httpx.TimeoutException as exc:
            raise SheetSyncError("Spreadsheet request timed out") from exc
        except httpx.HTTPError as exc:
            raise SheetSyncError(f"Spreadsheet request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise SheetSyncError(
                f"Spreadsheet API returned HTTP {resp.status_code}: {resp.text[:200]}"
            )
        if not resp.content:
            return {}
        return resp.json()

    # ── Sheet checks ──

    async def ensure_sheet(self) -> None:
        """Verify the configured sheet exists (checked once per client)."""
        if self._sheet_verified:
            return
        data = await self._request("GET", "", params={"fields": "sheets.properties.title"})
        titles = [
            s.get("properties", {}).get("title")
            for s in data.get("sheets", [])
        ]
        if self.sheet_name not in titles:
            raise SheetSyncError(f"Sheet '{self.sheet_name}' does not exist")
        self._sheet_verified = True

    # ── Reads ──

    async def read_keys(self) -> list[str]:
        """Return column A from the first data row down, one entry per row."""
        data = await self._request("GET", self._values_path(f"A{FIRST_DATA_ROW}:A"))
        return [
            str(row[0]).strip() if row else ""
            for row in data.get("values", [])
        ]

    async def find_row(self, key: str) -> int | None:
        """Linear scan of column A; return the 1-based sheet row or None."""
        for offset, cell in enumerate(await self.read_keys()):
            if cell == key:
                return offset + FIRST_DATA_ROW
        return None

    async def read_all(self) -> list[list[Any]]:
        cells = f"{FIRST_COLUMN}{FIRST_DATA_ROW}:{LAST_COLUMN}"
        data = await self._request("GET", self._values_path(cells))
        return data.get("values", [])

    # ── Writes ──

    async def update_row(self, row_index: int, values: list[Any]) -> None:
        if row_index < FIRST_DATA_ROW:
            raise ValueError(f"row {row_index} is the header or out of range")
        cells = f"{FIRST_COLUMN}{row_index}:{LAST_COLUMN}{row_index}"
        await self._request(
            "PUT",
            self._values_path(cells),
            params={"valueInputOption": VALUE_INPUT_OPTION},
            json={"range": self.a1(cells), "majorDimension": "ROWS", "values": [values]},
        )

    async def append_rows(self, rows: list[list[Any]]) -> None:
        if not rows:
            return
        cells = f"{FIRST_COLUMN}{FIRST_DATA_ROW}:{LAST_COLUMN}"
        await self._request(
            "POST",
            self._values_path(cells, ":append"),
            params={
                "valueInputOption": VALUE_INPUT_OPTION,
                "insertDataOption": "INSERT_ROWS",
            },
            json={"majorDimension": "ROWS", "values": rows},
        )

    async def append_row(self, values: list[Any]) -> None:
        await self.append_rows([values])

    async def batch_update(self, rows: dict[int, list[Any]]) -> None:
        """Overwrite several rows in one call, keyed by 1-based sheet row."""
        if not rows:
            return
        data = []
        for row_index, values in sorted(rows.items()):
            cells = f"{FIRST_COLUMN}{row_index}:{LAST_COLUMN}{row_index}"
            data.append({"range": self.a1(cells), "majorDimension": "ROWS", "values": [values]})
        await self._request(
            "POST",
            "/values:batchUpdate",
            json={"valueInputOption": VALUE_INPUT_OPTION, "data": data},
        )

    async def close(self) -> None:
        await self._http.aclose()
