"""Usage service: append-only verification audit trail."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from licensary.common.config import LicensarySettings
from licensary.usage.models import LicenseUsageModel

logger = logging.getLogger(__name__)


class UsageService:
    """Records and queries license usage events."""

    def __init__(self, settings: LicensarySettings):
        self.settings = settings

    async def record(
        self,
        session: AsyncSession,
        license_key: str,
        action: str,
        ip_address: str = "",
        user_agent: str = "",
    ) -> LicenseUsageModel | None:
        """Append a usage row; best-effort.

        The insert runs in a SAVEPOINT: a failed write is logged and rolled
        back on its own, leaving the rest of the session intact, and ``None``
        is returned so the calling operation still succeeds.
        """
        usage = LicenseUsageModel(
            license_key=license_key,
            action=action,
            ip_address=ip_address or "",
            user_agent=user_agent or "",
        )
        try:
            async with session.begin_nested():
                session.add(usage)
        except SQLAlchemyError:
            logger.warning("Could not record usage for license %s", license_key, exc_info=True)
            return None
        return usage

    async def get_usage(
        self, session: AsyncSession, license_key: str, limit: int | None = None,
    ) -> list[LicenseUsageModel]:
        """Most recent usage rows for a key, newest first."""
        limit = limit or self.settings.usage_history_limit
        result = await session.execute(
            select(LicenseUsageModel)
            .where(LicenseUsageModel.license_key == license_key)
            .order_by(LicenseUsageModel.timestamp.desc(), LicenseUsageModel.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
