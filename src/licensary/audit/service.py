"""Operation log service: record and query administrative actions."""

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from licensary.audit.models import OperationLogModel
from licensary.common.config import LicensarySettings


class AuditService:
    """Append-only log of who changed what."""

    def __init__(self, settings: LicensarySettings):
        self.settings = settings

    # ── Write ──

    async def record_operation(
        self,
        session: AsyncSession,
        user_id: int,
        action: str,
        target: str = "",
        target_id: str = "",
        details: dict[str, Any] | None = None,
    ) -> OperationLogModel:
        entry = OperationLogModel(
            user_id=user_id,
            action=action,
            target=target,
            target_id=target_id,
            details=details or {},
        )
        session.add(entry)
        await session.flush()
        return entry

    # ── Read ──

    async def list_operations(
        self,
        session: AsyncSession,
        user_id: int | None = None,
        action: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[OperationLogModel], int]:
        """Newest-first page of entries, optionally filtered."""
        query = select(OperationLogModel)
        count_query = select(func.count()).select_from(OperationLogModel)
        if user_id is not None:
            query = query.where(OperationLogModel.user_id == user_id)
            count_query = count_query.where(OperationLogModel.user_id == user_id)
        if action:
            query = query.where(OperationLogModel.action == action)
            count_query = count_query.where(OperationLogModel.action == action)

        total = (await session.execute(count_query)).scalar() or 0
        result = await session.execute(
            query.order_by(OperationLogModel.created_at.desc(), OperationLogModel.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total
