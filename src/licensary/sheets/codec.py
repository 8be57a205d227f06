"""Row layout and type coercion for the spreadsheet mirror.

Row 1 of the sheet is a header; data starts at row 2. Columns A-I are::

    key | status | validUntil | userId | productId | version |
    lastActivatedAt | createdAt | updatedAt

Timestamps are RFC3339 strings. ``permissions`` and ``issued_to`` are not
mirrored.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

from licensary.common.exceptions import BadRequestError
from licensary.common.models import as_utc
from licensary.licensing.state import parse_status

COLUMNS = (
    "key",
    "status",
    "valid_until",
    "user_id",
    "product_id",
    "version",
    "last_activated_at",
    "created_at",
    "updated_at",
)
FIRST_COLUMN = "A"
LAST_COLUMN = "I"
FIRST_DATA_ROW = 2
MIN_ROW_CELLS = 7

_RFC3339 = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


class RowParseError(ValueError):
    """A mirror row that cannot become a license."""


@dataclass
class LicenseSnapshot:
    """Detached copy of a license, safe to hand across sessions and tasks."""

    key: str
    status: str
    valid_until: datetime
    user_id: str = ""
    product_id: str = ""
    version: str = ""
    permissions: str = ""
    issued_to: int = 0
    last_activated_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, lic) -> "LicenseSnapshot":
        return cls(
            key=lic.key,
            status=lic.status,
            valid_until=as_utc(lic.valid_until),
            user_id=lic.user_id,
            product_id=lic.product_id,
            version=lic.version,
            permissions=lic.permissions,
            issued_to=lic.issued_to,
            last_activated_at=as_utc(lic.last_activated_at),
            created_at=as_utc(lic.created_at),
            updated_at=as_utc(lic.updated_at),
        )


def format_rfc3339(value: datetime | None) -> str:
    if value is None:
        return ""
    return as_utc(value).astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_rfc3339(text: str) -> datetime:
    match = _RFC3339.match(text.strip())
    if match is None:
        raise ValueError(f"not an RFC3339 timestamp: {text!r}")
    date_part, time_part, fraction, offset = match.groups()
    fraction = f".{(fraction or '0')[:6].ljust(6, '0')}"
    offset = "+00:00" if offset in ("Z", "z") else offset
    return datetime.fromisoformat(f"{date_part}T{time_part}{fraction}{offset}").astimezone(
        timezone.utc
    )


def license_to_row(snapshot: LicenseSnapshot) -> list[str]:
    return [
        snapshot.key,
        snapshot.status,
        format_rfc3339(snapshot.valid_until),
        snapshot.user_id,
        snapshot.product_id,
        snapshot.version,
        format_rfc3339(snapshot.last_activated_at),
        format_rfc3339(snapshot.created_at),
        format_rfc3339(snapshot.updated_at),
    ]


def _cell(row: Sequence[Any], index: int) -> str:
    if index >= len(row) or row[index] is None:
        return ""
    value = row[index]
    # USER_ENTERED writes turn numeric-looking ids into numbers.
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _timestamp(row: Sequence[Any], index: int, required: bool) -> datetime | None:
    text = _cell(row, index)
    if not text:
        if required:
            raise RowParseError(f"missing {COLUMNS[index]}")
        return None
    try:
        return parse_rfc3339(text)
    except ValueError as exc:
        raise RowParseError(f"bad {COLUMNS[index]}: {exc}") from exc


def row_to_license(row: Sequence[Any], now: datetime) -> LicenseSnapshot:
    """Parse one mirror row.

    Rows need the first seven cells; ``createdAt``/``updatedAt`` may be
    blank (defaulting to ``now``) but must parse when present.
    """
    if len(row) < MIN_ROW_CELLS:
        raise RowParseError(f"expected at least {MIN_ROW_CELLS} cells, got {len(row)}")

    key = _cell(row, 0)
    if not key:
        raise RowParseError("missing key")
    try:
        status = parse_status(_cell(row, 1))
    except BadRequestError as exc:
        raise RowParseError(exc.message) from exc

    valid_until = _timestamp(row, 2, required=True)
    last_activated_at = _timestamp(row, 6, required=True)
    created_at = _timestamp(row, 7, required=False) or now
    updated_at = _timestamp(row, 8, required=False) or now

    return LicenseSnapshot(
        key=key,
        status=status.value,
        valid_until=valid_until,
        user_id=_cell(row, 3),
        product_id=_cell(row, 4),
        version=_cell(row, 5),
        last_activated_at=last_activated_at,
        created_at=created_at,
        updated_at=updated_at,
    )
