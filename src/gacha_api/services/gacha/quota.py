"""Daily draw quota backed by an atomic per-day counter."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gacha_api.core.clock import local_date
from gacha_api.core.settings import settings
from gacha_api.db.upsert import dialect_insert
from gacha_api.models.gacha import DailyDrawCounter


class QuotaTracker:
    """Count draws per user and local calendar day."""

    def __init__(self, db_session: AsyncSession, *, daily_limit: int | None = None) -> None:
        self._db = db_session
        self._daily_limit = daily_limit

    @property
    def daily_limit(self) -> int:
        return self._daily_limit if self._daily_limit is not None else settings.daily_draw_limit

    async def daily_count(self, user_id: str, now: datetime | None = None) -> int:
        stmt = select(DailyDrawCounter.draw_count).where(
            DailyDrawCounter.user_id == user_id,
            DailyDrawCounter.day == local_date(now),
        )
        result = await self._db.execute(stmt)
        return int(result.scalar_one_or_none() or 0)

    async def remaining(self, user_id: str, now: datetime | None = None) -> int:
        return max(self.daily_limit - await self.daily_count(user_id, now), 0)

    async def increment(self, user_id: str, n: int = 1, now: datetime | None = None) -> int:
        """Add ``n`` draws in a single statement and return the new daily total."""

        if n < 0:
            raise ValueError("increment must not be negative")

        stmt = dialect_insert(self._db, DailyDrawCounter.__table__).values(
            user_id=user_id,
            day=local_date(now),
            draw_count=n,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "day"],
            set_={
                "draw_count": DailyDrawCounter.__table__.c.draw_count + n,
                "updated_at": func.now(),
            },
        ).returning(DailyDrawCounter.__table__.c.draw_count)
        result = await self._db.execute(stmt)
        return int(result.scalar_one())


__all__ = ["QuotaTracker"]
