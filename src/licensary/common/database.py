"""Async database manager for Licensary (single-DB)."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from licensary.common.config import LicensarySettings, get_settings
from licensary.common.models import Base

# Import all model modules so Base.metadata is complete for create_all().
import licensary.users.models  # noqa: F401
import licensary.licensing.models  # noqa: F401
import licensary.usage.models  # noqa: F401
import licensary.audit.models  # noqa: F401

logger = logging.getLogger(__name__)

_AFTER_COMMIT = "after_commit"


def on_commit(session: AsyncSession, callback: Callable[[], None]) -> None:
    """Run ``callback`` once the session's transaction has committed.

    Callbacks are dropped if the transaction rolls back.
    """
    session.info.setdefault(_AFTER_COMMIT, []).append(callback)


class DatabaseManager:
    """Manages a single async database engine."""

    def __init__(self, settings: LicensarySettings | None = None):
        self._settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        url = self._settings.db_url
        self.engine = create_async_engine(url, echo=False)
        self._session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not initialized; call init() first")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                session.info.pop(_AFTER_COMMIT, None)
                await session.rollback()
                raise
            for callback in session.info.pop(_AFTER_COMMIT, []):
                try:
                    callback()
                except Exception:
                    logger.exception("After-commit callback failed")

    async def create_all(self) -> None:
        if self.engine is None:
            raise RuntimeError("DatabaseManager not initialized; call init() first")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self._session_factory = None
