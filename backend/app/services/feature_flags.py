"""Boolean feature flags stored in the settings table. Missing or unreadable flags are off."""
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Setting

logger = logging.getLogger(__name__)

ALLOW_REVERSE_SHARES = "allow_reverse_shares"

_TRUE_VALUES = frozenset({"1", "true", "on", "yes"})


def parse_bool(value: str | None) -> bool:
    """Lenient bool parse; anything unrecognised is False."""
    if value is None:
        return False
    return value.strip().lower() in _TRUE_VALUES


class FeatureFlags:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def is_enabled(self, key: str) -> bool:
        try:
            result = await self._db.execute(select(Setting.value).where(Setting.key == key))
            value = result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception("Could not read feature flag %s; treating as disabled", key)
            return False
        return parse_bool(value)

    async def set(self, key: str, value: str) -> Setting:
        row = await self._db.get(Setting, key)
        if row is None:
            row = Setting(key=key, value=value)
            self._db.add(row)
        else:
            row.value = value
        await self._db.flush()
        return row
