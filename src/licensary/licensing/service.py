"""Licensing service: the license lifecycle and verification audit trail."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from licensary.audit.service import AuditService
from licensary.common.config import LicensarySettings
from licensary.common.database import on_commit
from licensary.common.exceptions import BadRequestError, InternalError, LicenseNotFoundError
from licensary.common.models import as_utc, utcnow
from licensary.keygen.generator import generate_license_key
from licensary.licensing.models import LicenseModel
from licensary.licensing.state import LicenseStatus, check_transition, parse_status
from licensary.sheets.codec import LicenseSnapshot
from licensary.sheets.engine import PushQueue
from licensary.usage.service import UsageService

logger = logging.getLogger(__name__)

# Wall-clock format accepted for ``validuntil`` in update requests.
PATCH_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"

KEY_ATTEMPTS = 5


@dataclass
class VerificationResult:
    valid: bool
    status: str


def parse_patch_timestamp(value: str | None) -> datetime | None:
    """Parse a patch timestamp as UTC; unparsable input yields None."""
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), PATCH_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        logger.info("Ignoring unparsable validuntil %r", value)
        return None


class LicensingService:
    """License lifecycle operations."""

    def __init__(
        self,
        settings: LicensarySettings,
        usage_service: UsageService,
        audit_service: AuditService | None = None,
        push_queue: PushQueue | None = None,
    ):
        self.settings = settings
        self.usage = usage_service
        self.audit_service = audit_service
        self.push_queue = push_queue

    # ── Lookup ──

    async def get_license(self, session: AsyncSession, key: str) -> LicenseModel | None:
        return await session.get(LicenseModel, key)

    async def _require_license(self, session: AsyncSession, key: str) -> LicenseModel:
        lic = await self.get_license(session, key)
        if lic is None:
            raise LicenseNotFoundError()
        return lic

    async def list_licenses(
        self,
        session: AsyncSession,
        status: str | None = None,
        user_id: str | None = None,
        product_id: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[LicenseModel], int]:
        """List licenses with optional filtering. Returns (items, total_count)."""
        filters = []
        if status:
            filters.append(LicenseModel.status == parse_status(status).value)
        if user_id:
            filters.append(LicenseModel.user_id == user_id)
        if product_id:
            filters.append(LicenseModel.product_id == product_id)

        total = (await session.execute(
            select(func.count()).select_from(LicenseModel).where(*filters)
        )).scalar() or 0

        result = await session.execute(
            select(LicenseModel).where(*filters)
            .order_by(LicenseModel.created_at.desc(), LicenseModel.key)
            .offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total

    # ── Lifecycle ──

    async def generate(
        self,
        session: AsyncSession,
        version: str = "",
        permissions: str = "",
        user_id: str = "",
        product_id: str = "",
        actor_id: int = 0,
    ) -> LicenseModel:
        """Persist a new inactive license valid for the configured window."""
        now = utcnow()
        key = await self._allocate_key(session, now)
        lic = LicenseModel(
            key=key,
            status=LicenseStatus.INACTIVE.value,
            valid_until=now + timedelta(days=self.settings.generated_license_days),
            version=version,
            permissions=permissions,
            user_id=user_id,
            product_id=product_id,
            created_at=now,
            updated_at=now,
            last_activated_at=now,
        )
        session.add(lic)
        await session.flush()

        await self._record_operation(session, actor_id, "license.generate", key, {
            "user_id": user_id, "product_id": product_id,
        })
        self._schedule_push(session, lic)
        return lic

    async def _allocate_key(self, session: AsyncSession, now: datetime) -> str:
        for _ in range(KEY_ATTEMPTS):
            key = generate_license_key(now)
            if await session.get(LicenseModel, key) is None:
                return key
        raise InternalError("Could not allocate a unique license key")

    async def issue(
        self, session: AsyncSession, key: str, user_id: int, actor_id: int = 0,
    ) -> LicenseModel:
        lic = await self._require_license(session, key)
        lic.issued_to = user_id
        lic.updated_at = utcnow()
        await session.flush()

        await self._record_operation(session, actor_id, "license.issue", key, {
            "issued_to": user_id,
        })
        return lic

    async def verify(
        self,
        session: AsyncSession,
        key: str,
        user_id: str,
        product_id: str,
        ip_address: str = "",
        user_agent: str = "",
    ) -> VerificationResult:
        """Check a license against its binding and expiry.

        Every lookup that finds the key leaves one usage row, including
        binding mismatches, which are committed before the error is raised.
        """
        if not key or not user_id or not product_id:
            raise BadRequestError("key, userid and productid are required")

        lic = await self._require_license(session, key)

        if lic.user_id != user_id or lic.product_id != product_id:
            await self.usage.record(
                session, key, "verify binding mismatch",
                ip_address=ip_address, user_agent=user_agent,
            )
            await session.commit()
            raise BadRequestError("License does not match the given user or product")

        status = lic.status
        valid = (
            status != LicenseStatus.REVOKED.value
            and utcnow() < as_utc(lic.valid_until)
        )
        await self.usage.record(
            session, key, f"verify license {'true' if valid else 'false'}",
            ip_address=ip_address, user_agent=user_agent,
        )
        return VerificationResult(valid=valid, status=status)

    async def activate(self, session: AsyncSession, key: str) -> LicenseModel:
        lic = await self._require_license(session, key)
        check_transition(lic.status, LicenseStatus.ACTIVE)

        now = utcnow()
        lic.status = LicenseStatus.ACTIVE.value
        lic.updated_at = now
        lic.last_activated_at = now
        await session.flush()

        logger.info("License %s activated", key)
        self._schedule_push(session, lic)
        return lic

    async def create_or_patch(
        self,
        session: AsyncSession,
        key: str,
        status: str | None = None,
        valid_until: str | None = None,
        version: str | None = None,
        permissions: str | None = None,
        user_id: str | None = None,
        product_id: str | None = None,
        actor_id: int = 0,
    ) -> tuple[LicenseModel, bool]:
        """Patch a license, creating it when the key is unknown.

        Returns ``(license, created)``. Status changes here are the admin
        override and skip the transition table. An unparsable
        ``valid_until`` is ignored.
        """
        fields = {
            "status": parse_status(status).value if status else None,
            "valid_until": parse_patch_timestamp(valid_until),
            "version": version,
            "permissions": permissions,
            "user_id": user_id,
            "product_id": product_id,
        }

        lic = await self.get_license(session, key)
        created = lic is None
        if created:
            lic = self._create_from_patch(key, fields)
            session.add(lic)
        else:
            self._apply_patch(lic, fields)
        await session.flush()

        await self._record_operation(
            session, actor_id, "license.create" if created else "license.update", key,
            {name: str(value) for name, value in fields.items() if value},
        )
        self._schedule_push(session, lic)
        return lic, created

    def _create_from_patch(self, key: str, fields: dict) -> LicenseModel:
        now = utcnow()
        lic = LicenseModel(
            key=key,
            status=LicenseStatus.ACTIVE.value,
            valid_until=now + timedelta(days=self.settings.upsert_license_days),
            issued_to=0,
            version="",
            permissions="",
            user_id="",
            product_id="",
            created_at=now,
            updated_at=now,
            last_activated_at=now,
        )
        self._apply_patch(lic, fields, now)
        return lic

    @staticmethod
    def _apply_patch(lic: LicenseModel, fields: dict, now: datetime | None = None) -> None:
        for name, value in fields.items():
            if value:
                setattr(lic, name, value)
        lic.updated_at = now or utcnow()

    async def delete(self, session: AsyncSession, key: str, actor_id: int = 0) -> None:
        lic = await self._require_license(session, key)
        await session.delete(lic)
        await session.flush()
        await self._record_operation(session, actor_id, "license.delete", key)
        self._cancel_pushes(session, key)

    # ── Collaborators ──

    def _schedule_push(self, session: AsyncSession, lic: LicenseModel) -> None:
        """Queue a mirror push that fires only once ``session`` commits."""
        if self.push_queue is None:
            return
        snapshot = LicenseSnapshot.from_model(lic)
        queue = self.push_queue
        on_commit(session, lambda: queue.enqueue(snapshot))

    def _cancel_pushes(self, session: AsyncSession, key: str) -> None:
        """Skip pushes still queued for ``key`` once the delete commits."""
        if self.push_queue is None:
            return
        queue = self.push_queue
        on_commit(session, lambda: queue.discard(key))

    async def _record_operation(
        self, session: AsyncSession, actor_id: int, action: str, key: str,
        details: dict | None = None,
    ) -> None:
        if self.audit_service and actor_id:
            await self.audit_service.record_operation(
                session, actor_id, action, target="license", target_id=key,
                details=details,
            )
