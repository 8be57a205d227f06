"""Two-way reconciliation between the license table and the spreadsheet mirror.

Push sends one license to the mirror after writing it to the store; the
store write is never rolled back when the mirror write fails. Pull
replaces the whole license table with the mirror contents inside one
transaction. Last writer wins at the table level: a pull discards rows
created since the mirror was last written.
"""

import asyncio
import logging
from collections import Counter
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import delete, select

from licensary.common.config import LicensarySettings
from licensary.common.database import DatabaseManager
from licensary.common.exceptions import PullInProgressError
from licensary.common.models import utcnow
from licensary.licensing.models import LicenseModel
from licensary.sheets.codec import (
    FIRST_DATA_ROW,
    LicenseSnapshot,
    RowParseError,
    license_to_row,
    row_to_license,
)

logger = logging.getLogger(__name__)

INSERT_BATCH_SIZE = 100


@dataclass
class SkippedRow:
    row_number: int
    reason: str


@dataclass
class PullResult:
    started_at: datetime
    rows_read: int = 0
    inserted: int = 0
    duplicates: list[str] = field(default_factory=list)
    skipped: list[SkippedRow] = field(default_factory=list)
    aborted: bool = False
    message: str = ""
    finished_at: datetime | None = None


@dataclass
class ExportResult:
    updated: int = 0
    appended: int = 0


class SyncEngine:
    """Reconciles the license table with the mirror in both directions."""

    def __init__(self, settings: LicensarySettings, db: DatabaseManager, mirror):
        self.settings = settings
        self.db = db
        self.mirror = mirror
        self._pull_lock = asyncio.Lock()
        self.last_pull: PullResult | None = None

    @property
    def pull_running(self) -> bool:
        return self._pull_lock.locked()

    # ── Push ──

    async def push(self, snapshot: LicenseSnapshot) -> str:
        """Commit one license to the store, then write it to the mirror.

        Returns ``"updated"`` or ``"appended"``. Mirror failures are logged
        and re-raised; the store write stays committed.
        """
        await self._commit_to_store(snapshot)

        row = license_to_row(snapshot)
        try:
            await self.mirror.ensure_sheet()
            row_index = await self.mirror.find_row(snapshot.key)
            if row_index is None:
                await self.mirror.append_row(row)
                outcome = "appended"
            else:
                await self.mirror.update_row(row_index, row)
                outcome = "updated"
        except Exception:
            logger.warning("Mirror push failed for license %s", snapshot.key, exc_info=True)
            raise

        logger.info("Pushed license %s to mirror (%s)", snapshot.key, outcome)
        return outcome

    async def _commit_to_store(self, snapshot: LicenseSnapshot) -> None:
        async with self.db.get_session() as session:
            existing = await session.get(LicenseModel, snapshot.key)
            if existing is None:
                session.add(self._to_model(snapshot))
            else:
                existing.status = snapshot.status
                existing.valid_until = snapshot.valid_until
                existing.version = snapshot.version
                existing.permissions = snapshot.permissions
                existing.user_id = snapshot.user_id
                existing.product_id = snapshot.product_id
                if snapshot.last_activated_at is not None:
                    existing.last_activated_at = snapshot.last_activated_at
                existing.updated_at = snapshot.updated_at or utcnow()

    # ── Pull ──

    async def pull(self) -> PullResult:
        """Overwrite the license table with the mirror contents.

        Raises :class:`PullInProgressError` if another pull is running and
        :class:`SheetSyncError` if the mirror cannot be read; in both cases
        the table is untouched.
        """
        if self._pull_lock.locked():
            raise PullInProgressError()

        async with self._pull_lock:
            now = utcnow()
            result = PullResult(started_at=now)
            rows = await self.mirror.read_all()
            result.rows_read = len(rows)

            parsed = self._parse_rows(rows, now, result)
            if not parsed and not self.settings.sheets_allow_empty_pull:
                result.aborted = True
                result.message = "Mirror yielded no usable rows; table left unchanged"
                result.finished_at = utcnow()
                logger.warning(
                    "Pull aborted: %d rows read, none usable", result.rows_read,
                )
                self.last_pull = result
                return result

            async with self.db.get_session() as session:
                carried = {
                    row.key: (row.permissions, row.issued_to)
                    for row in await session.execute(
                        select(LicenseModel.key, LicenseModel.permissions, LicenseModel.issued_to)
                    )
                }
                await session.execute(delete(LicenseModel))

                snapshots = list(parsed.values())
                for start in range(0, len(snapshots), INSERT_BATCH_SIZE):
                    for snapshot in snapshots[start:start + INSERT_BATCH_SIZE]:
                        if snapshot.key in carried:
                            snapshot.permissions, snapshot.issued_to = carried[snapshot.key]
                        session.add(self._to_model(snapshot))
                    await session.flush()

            result.inserted = len(parsed)
            result.finished_at = utcnow()
            result.message = "ok"
            logger.info(
                "Pulled %d licenses from mirror (%d rows read, %d skipped, %d duplicate keys)",
                result.inserted, result.rows_read, len(result.skipped), len(result.duplicates),
            )
            self.last_pull = result
            return result

    def _parse_rows(
        self, rows: list, now: datetime, result: PullResult,
    ) -> dict[str, LicenseSnapshot]:
        """Parse mirror rows; later rows win when a key repeats."""
        parsed: dict[str, LicenseSnapshot] = {}
        for offset, row in enumerate(rows):
            row_number = offset + FIRST_DATA_ROW
            try:
                snapshot = row_to_license(row, now)
            except RowParseError as exc:
                logger.warning("Skipping mirror row %d: %s", row_number, exc)
                result.skipped.append(SkippedRow(row_number=row_number, reason=str(exc)))
                continue
            if snapshot.key in parsed:
                result.duplicates.append(snapshot.key)
                del parsed[snapshot.key]
            parsed[snapshot.key] = snapshot
        return parsed

    # ── Export ──

    async def export_all(self) -> ExportResult:
        """Write every stored license to the mirror.

        One read of the key column serves as the row-location cache for
        this call: known keys are rewritten in place, the rest appended.
        """
        async with self.db.get_session() as session:
            result = await session.execute(select(LicenseModel).order_by(LicenseModel.created_at))
            snapshots = [LicenseSnapshot.from_model(lic) for lic in result.scalars().all()]

        await self.mirror.ensure_sheet()
        row_of: dict[str, int] = {}
        for offset, key in enumerate(await self.mirror.read_keys()):
            if key and key not in row_of:
                row_of[key] = offset + FIRST_DATA_ROW

        updates: dict[int, list] = {}
        appends: list[list] = []
        for snapshot in snapshots:
            row = license_to_row(snapshot)
            if snapshot.key in row_of:
                updates[row_of[snapshot.key]] = row
            else:
                appends.append(row)

        await self.mirror.batch_update(updates)
        await self.mirror.append_rows(appends)
        logger.info("Exported %d licenses to mirror (%d updated, %d appended)",
                    len(snapshots), len(updates), len(appends))
        return ExportResult(updated=len(updates), appended=len(appends))

    @staticmethod
    def _to_model(snapshot: LicenseSnapshot) -> LicenseModel:
        now = utcnow()
        return LicenseModel(
            key=snapshot.key,
            status=snapshot.status,
            valid_until=snapshot.valid_until,
            issued_to=snapshot.issued_to,
            version=snapshot.version,
            permissions=snapshot.permissions,
            user_id=snapshot.user_id,
            product_id=snapshot.product_id,
            created_at=snapshot.created_at or now,
            updated_at=snapshot.updated_at or now,
            last_activated_at=snapshot.last_activated_at or now,
        )


class PushQueue:
    """Bounded queue of pending pushes drained by a single consumer task.

    ``enqueue`` never blocks the caller: when the queue is full the push is
    dropped and logged, and the next pull or export reconciles the row.
    ``discard`` skips the pushes already queued for a deleted key; pushes
    enqueued afterwards still run.
    """

    def __init__(self, engine: SyncEngine, maxsize: int = 256):
        self.engine = engine
        self._queue: asyncio.Queue[LicenseSnapshot] = asyncio.Queue(maxsize=maxsize)
        self._worker: asyncio.Task | None = None
        self.pushed = 0
        self.failed = 0
        self.dropped = 0
        self.skipped = 0
        self._queued_keys: Counter[str] = Counter()
        self._skip: Counter[str] = Counter()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def enqueue(self, snapshot: LicenseSnapshot) -> bool:
        try:
            self._queue.put_nowait(snapshot)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Push queue full; dropped push for license %s", snapshot.key)
            return False
        self._queued_keys[snapshot.key] += 1
        return True

    def discard(self, key: str) -> int:
        """Skip every push currently queued for ``key``; returns how many."""
        count = self._queued_keys[key] - self._skip[key]
        if count > 0:
            self._skip[key] += count
            logger.info("Discarding %d queued pushes for deleted license %s", count, key)
        return max(count, 0)

    def _take(self, key: str) -> bool:
        """Account for a dequeued push; False when it was discarded."""
        self._queued_keys[key] -= 1
        if self._queued_keys[key] <= 0:
            del self._queued_keys[key]
        if self._skip[key] > 0:
            self._skip[key] -= 1
            if not self._skip[key]:
                del self._skip[key]
            return False
        return True

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run(), name="sheet-push")

    async def _run(self) -> None:
        while True:
            snapshot = await self._queue.get()
            try:
                if not self._take(snapshot.key):
                    self.skipped += 1
                    continue
                await self.engine.push(snapshot)
                self.pushed += 1
            except Exception:
                self.failed += 1
                logger.exception("Push for license %s failed", snapshot.key)
            finally:
                self._queue.task_done()

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain pending pushes (up to ``timeout`` seconds), then stop."""
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Push queue stopped with %d pushes pending", self.pending)
        self._worker.cancel()
        with suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None


class PullScheduler:
    """Runs :meth:`SyncEngine.pull` on a fixed interval, one at a time."""

    def __init__(self, engine: SyncEngine, interval: float):
        self.engine = engine
        self.interval = interval
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="sheet-pull")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()

    async def run_once(self) -> PullResult | None:
        try:
            return await self.engine.pull()
        except PullInProgressError:
            logger.info("Scheduled pull skipped: previous pull still running")
        except Exception:
            logger.exception("Scheduled pull failed; license table left unchanged")
        return None

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
