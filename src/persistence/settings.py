"""System settings repository — the loader behind SystemSettingsCache."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.settings import SystemSettingRecord
from src.schemas.pricing import SystemSetting

logger = logging.getLogger(__name__)


class SystemSettingsRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load_all(self) -> list[SystemSetting]:
        """Every stored setting. Errors propagate; the cache decides what to serve."""
        async with self._session_factory() as db:
            result = await db.execute(select(SystemSettingRecord).order_by(SystemSettingRecord.key))
            records = result.scalars().all()
        logger.debug("Loaded %d system settings", len(records))
        return [SystemSetting(key=r.key, value=r.value) for r in records]
