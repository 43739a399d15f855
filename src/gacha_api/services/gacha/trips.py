"""Public trip publication with order-independent duplicate detection."""

from __future__ import annotations

from typing import Iterable, Sequence

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gacha_api.core.clock import utc_now
from gacha_api.core.settings import settings
from gacha_api.models.gacha import DrawSession


def trip_signature(place_ids: Iterable[int]) -> tuple[int, ...]:
    """Canonical form of a trip: the same places in any order compare equal."""

    return tuple(sorted(int(place_id) for place_id in place_ids))


class TripPublisher:
    """Decide whether a draw result becomes a public trip and number it."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        window: int | None = None,
        min_places: int | None = None,
    ) -> None:
        self._db = db_session
        self._window = window if window is not None else settings.trip_dedup_window
        self._min_places = min_places if min_places is not None else settings.trip_min_places

    async def recent_signatures(self, city: str) -> set[tuple[int, ...]]:
        stmt = (
            select(DrawSession.ordered_place_ids)
            .where(DrawSession.city == city, DrawSession.is_published.is_(True))
            .order_by(DrawSession.id.desc())
            .limit(self._window)
        )
        result = await self._db.execute(stmt)
        return {trip_signature(ids or []) for ids in result.scalars().all()}

    async def should_publish(self, city: str, ordered_place_ids: Sequence[int]) -> bool:
        if len(ordered_place_ids) < self._min_places:
            return False
        signature = trip_signature(ordered_place_ids)
        return signature not in await self.recent_signatures(city)

    async def publish(self, draw_session: DrawSession) -> DrawSession:
        """Mark ``draw_session`` published and assign its per-locale sequence number."""

        if draw_session.id is None:
            await self._db.flush()

        draw_session.is_published = True
        draw_session.published_at = utc_now()
        await self._db.flush()

        stmt = select(func.count(DrawSession.id)).where(
            DrawSession.city == draw_session.city,
            DrawSession.is_published.is_(True),
            DrawSession.id <= draw_session.id,
        )
        if draw_session.district:
            stmt = stmt.where(DrawSession.district == draw_session.district)
        sequence = int((await self._db.execute(stmt)).scalar_one())
        draw_session.trip_sequence = sequence
        await self._db.flush()

        logger.info(
            "Published trip",
            draw_session_id=draw_session.id,
            city=draw_session.city,
            district=draw_session.district,
            trip_sequence=sequence,
        )
        return draw_session


__all__ = ["TripPublisher", "trip_signature"]
