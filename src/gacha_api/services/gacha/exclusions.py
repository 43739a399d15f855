"""Per-user penalty ledger and global place exclusions."""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from gacha_api.core.clock import utc_now
from gacha_api.core.settings import settings
from gacha_api.db.upsert import dialect_insert
from gacha_api.models.gacha import GLOBAL_USER_KEY, ExclusionScope, PlaceExclusion
from gacha_api.services.catalog import Locale
from gacha_api.services.configuration import ConfigurationService

CONFIG_CATEGORY = "gacha"
EXCLUSION_THRESHOLD_KEY = "exclusion_threshold"
_LEDGER_KEY = ["user_key", "place_name", "city", "district"]


class ExclusionLedger:
    """Track which places a user (or everybody) should no longer be shown.

    A place is excluded for a user when a global record exists for it in the
    locale, or when the user's own penalty score reached the threshold.
    """

    def __init__(self, db_session: AsyncSession, *, config_service: ConfigurationService | None = None) -> None:
        self._db = db_session
        self._config = config_service or ConfigurationService(db_session)

    async def threshold(self) -> int:
        value = await self._config.get(
            CONFIG_CATEGORY,
            EXCLUSION_THRESHOLD_KEY,
            settings.exclusion_penalty_threshold,
        )
        try:
            return max(int(value), 1)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed exclusion threshold", value=value)
            return settings.exclusion_penalty_threshold

    def _locale_filter(self, locale: Locale):
        clauses = [PlaceExclusion.city == locale.city]
        if locale.district:
            # City-wide records ("") also cover every district of the city
            clauses.append(PlaceExclusion.district.in_([locale.district, ""]))
        return and_(*clauses)

    async def _active_filter(self, user_id: str | None):
        global_clause = PlaceExclusion.scope == ExclusionScope.GLOBAL_PERMANENT
        if user_id is None:
            return global_clause
        threshold = await self.threshold()
        return or_(
            global_clause,
            and_(
                PlaceExclusion.scope == ExclusionScope.USER_SCORED,
                PlaceExclusion.user_key == user_id,
                PlaceExclusion.penalty_score >= threshold,
            ),
        )

    async def is_excluded(self, user_id: str | None, place_name: str, locale: Locale) -> bool:
        stmt = (
            select(PlaceExclusion.id)
            .where(PlaceExclusion.place_name == place_name)
            .where(self._locale_filter(locale))
            .where(await self._active_filter(user_id))
            .limit(1)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def excluded_names(self, user_id: str | None, locale: Locale) -> set[str]:
        stmt = (
            select(PlaceExclusion.place_name)
            .where(self._locale_filter(locale))
            .where(await self._active_filter(user_id))
        )
        result = await self._db.execute(stmt)
        return set(result.scalars().all())

    async def penalty_score(self, user_id: str, place_name: str, locale: Locale) -> int:
        stmt = select(PlaceExclusion.penalty_score).where(
            PlaceExclusion.user_key == user_id,
            PlaceExclusion.place_name == place_name,
            PlaceExclusion.city == locale.city,
            PlaceExclusion.district == locale.district_key,
        )
        result = await self._db.execute(stmt)
        return int(result.scalar_one_or_none() or 0)

    async def penalize(self, user_id: str, place_name: str, locale: Locale) -> PlaceExclusion:
        """Add one penalty point, creating the record at 1 when absent."""

        now = utc_now()
        stmt = dialect_insert(self._db, PlaceExclusion).values(
            user_key=user_id,
            user_id=user_id,
            place_name=place_name,
            city=locale.city,
            district=locale.district_key,
            scope=ExclusionScope.USER_SCORED,
            penalty_score=1,
            last_interacted_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=_LEDGER_KEY,
            set_={
                "penalty_score": PlaceExclusion.penalty_score + 1,
                "last_interacted_at": now,
            },
        ).returning(PlaceExclusion)
        result = await self._db.scalars(stmt, execution_options={"populate_existing": True})
        record = result.one()
        logger.info(
            "Recorded place penalty",
            user_id=user_id,
            place_name=place_name,
            city=locale.city,
            penalty_score=record.penalty_score,
        )
        return record

    async def global_exclude(self, place_name: str, locale: Locale) -> PlaceExclusion:
        """Exclude a place for every user; repeated calls return the existing record."""

        stmt = dialect_insert(self._db, PlaceExclusion).values(
            user_key=GLOBAL_USER_KEY,
            user_id=None,
            place_name=place_name,
            city=locale.city,
            district=locale.district_key,
            scope=ExclusionScope.GLOBAL_PERMANENT,
            penalty_score=0,
            last_interacted_at=utc_now(),
        )
        stmt = stmt.on_conflict_do_nothing(
            index_elements=_LEDGER_KEY,
        )
        await self._db.execute(stmt)

        lookup = select(PlaceExclusion).where(
            PlaceExclusion.user_key == GLOBAL_USER_KEY,
            PlaceExclusion.place_name == place_name,
            PlaceExclusion.city == locale.city,
            PlaceExclusion.district == locale.district_key,
        )
        record = (await self._db.execute(lookup)).scalar_one()
        logger.info("Global place exclusion ensured", place_name=place_name, city=locale.city)
        return record

    async def list_global_exclusions(self, locale: Locale | None = None) -> Sequence[PlaceExclusion]:
        stmt = (
            select(PlaceExclusion)
            .where(PlaceExclusion.scope == ExclusionScope.GLOBAL_PERMANENT)
            .order_by(PlaceExclusion.created_at.desc())
        )
        if locale is not None:
            stmt = stmt.where(self._locale_filter(locale))
        result = await self._db.execute(stmt)
        return result.scalars().all()

    async def remove_global_exclusion(self, exclusion_id: UUID) -> bool:
        stmt = (
            delete(PlaceExclusion)
            .where(PlaceExclusion.id == exclusion_id)
            .where(PlaceExclusion.scope == ExclusionScope.GLOBAL_PERMANENT)
        )
        result = await self._db.execute(stmt)
        removed = (result.rowcount or 0) > 0
        if removed:
            logger.info("Removed global place exclusion", exclusion_id=str(exclusion_id))
        return removed


__all__ = ["ExclusionLedger"]
