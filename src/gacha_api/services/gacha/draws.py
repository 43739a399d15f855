"""Draw orchestration: select, roll, store, count, publish."""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gacha_api.core.clock import ensure_aware, utc_now
from gacha_api.core.errors import GachaError, GachaErrorCode, StoreUnavailableError
from gacha_api.core.settings import settings
from gacha_api.models.gacha import DrawSession, RewardTier
from gacha_api.models.inventory import InventoryItem
from gacha_api.observability.gacha import GachaObservabilityStore, get_gacha_store
from gacha_api.services.catalog import (
    CouponCatalog,
    CouponRecord,
    Locale,
    PlaceCatalog,
    PlaceRecord,
    SqlCouponCatalog,
    SqlPlaceCatalog,
)
from gacha_api.services.configuration import ConfigurationService
from gacha_api.services.gacha.exclusions import ExclusionLedger
from gacha_api.services.gacha.quota import QuotaTracker
from gacha_api.services.gacha.rarity import RarityRoller
from gacha_api.services.gacha.selector import DrawSelector
from gacha_api.services.gacha.trips import TripPublisher
from gacha_api.services.inventory import InventoryService, RewardGrant
from gacha_api.services.notifications import NotificationCounterSink, NotificationSink


@dataclass
class WonReward:
    tier: RewardTier
    coupon_id: UUID
    merchant_id: UUID
    title: str
    place_name: str | None
    inventory_item_id: UUID | None
    valid_until: datetime | None


@dataclass
class DrawOutcome:
    """Result of a committed draw."""

    draw_session_id: int
    session_key: UUID
    places: list[PlaceRecord]
    requested_count: int
    shortfall: bool
    won_tier: RewardTier | None = None
    won_reward: WonReward | None = None
    reward_stored: bool = False
    inventory_full: bool = False
    published: bool = False
    trip_sequence: int | None = None
    daily_count: int = 0
    remaining_quota: int = 0


class DrawService:
    """Run one draw as a single unit of work.

    Every write happens inside one transaction: a failure anywhere rolls the
    whole draw back, so no quota is spent on a reward that was never stored.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        places: PlaceCatalog | None = None,
        coupons: CouponCatalog | None = None,
        config_service: ConfigurationService | None = None,
        rng: random.Random | None = None,
        notifications: NotificationSink | None = None,
        store: GachaObservabilityStore | None = None,
        daily_limit: int | None = None,
        max_slots: int | None = None,
    ) -> None:
        self._db = db_session
        self._rng = rng or random.Random()
        self._config = config_service or ConfigurationService(db_session)
        self._coupons = coupons or SqlCouponCatalog(db_session)
        self._selector = DrawSelector(
            places or SqlPlaceCatalog(db_session),
            ExclusionLedger(db_session, config_service=self._config),
            rng=self._rng,
        )
        self._roller = RarityRoller(self._config, rng=self._rng)
        self._quota = QuotaTracker(db_session, daily_limit=daily_limit)
        self._inventory = InventoryService(db_session, max_slots=max_slots)
        self._trips = TripPublisher(db_session)
        self._notifications = notifications or NotificationCounterSink(
            async_sessionmaker(db_session.bind, expire_on_commit=False, class_=AsyncSession)
        )
        self._store = store or get_gacha_store()

    async def draw(
        self,
        user_id: str,
        locale: Locale,
        count: int | None = None,
        *,
        now: datetime | None = None,
    ) -> DrawOutcome:
        requested = count if count is not None else settings.default_draw_count
        if requested < 1 or requested > settings.max_draw_count:
            raise ValueError(f"count must be between 1 and {settings.max_draw_count}")
        moment = ensure_aware(now) if now is not None else utc_now()

        try:
            outcome = await self._draw(user_id, locale, requested, moment)
            await self._db.commit()
        except GachaError as exc:
            await self._db.rollback()
            self._store.record_draw_failure(exc.code.value)
            raise
        except SQLAlchemyError as exc:
            await self._db.rollback()
            self._store.record_draw_failure(GachaErrorCode.STORE_UNAVAILABLE.value)
            logger.exception("Draw rolled back after persistence failure", user_id=user_id, city=locale.city)
            raise StoreUnavailableError("Draw could not be persisted", user_id=user_id) from exc

        self._store.record_draw(
            tier=outcome.won_tier.value if outcome.won_tier else None,
            shortfall=outcome.shortfall,
            reward_stored=outcome.reward_stored,
            inventory_full=outcome.inventory_full,
            published=outcome.published,
        )
        if outcome.reward_stored:
            await self._notify_admission(user_id)
        return outcome

    async def _draw(self, user_id: str, locale: Locale, requested: int, moment: datetime) -> DrawOutcome:
        limit = self._quota.daily_limit
        used = await self._quota.daily_count(user_id, moment)
        if used + requested > limit:
            raise GachaError(
                GachaErrorCode.QUOTA_EXCEEDED,
                daily_limit=limit,
                current_count=used,
                remaining=max(limit - used, 0),
            )

        selection = await self._selector.select_candidates(locale, requested, user_id=user_id)
        tier = await self._roller.roll()

        won_reward: WonReward | None = None
        item: InventoryItem | None = None
        inventory_full = False
        if tier is not None:
            picked = await self._pick_coupon(selection.places, tier)
            if picked is not None:
                coupon, place = picked
                valid_until = moment + timedelta(days=coupon.valid_days) if coupon.valid_days else None
                item = await self._inventory.admit(
                    user_id,
                    RewardGrant(
                        tier=tier,
                        coupon_id=coupon.id,
                        merchant_id=coupon.merchant_id,
                        valid_until=valid_until,
                        payload={
                            "title": coupon.title,
                            "code": coupon.code,
                            "terms": coupon.terms,
                            "placeName": place.name,
                            "placeId": place.id,
                        },
                    ),
                )
                inventory_full = item is None
                if item is not None and not await self._coupons.decrement_remaining(coupon.id):
                    # A concurrent draw took the last unit after the coupon was listed
                    await self._db.delete(item)
                    await self._db.flush()
                    logger.info("Coupon stock exhausted; reward not stored", user_id=user_id, coupon_id=str(coupon.id))
                    item = None
                    picked = None
                if picked is not None:
                    won_reward = WonReward(
                        tier=tier,
                        coupon_id=coupon.id,
                        merchant_id=coupon.merchant_id,
                        title=coupon.title,
                        place_name=place.name,
                        inventory_item_id=item.id if item is not None else None,
                        valid_until=valid_until,
                    )

        drawn = len(selection.places)
        total = await self._quota.increment(user_id, drawn, moment) if drawn else used
        if total > limit:
            raise GachaError(
                GachaErrorCode.QUOTA_EXCEEDED,
                daily_limit=limit,
                current_count=total - drawn,
                remaining=max(limit - (total - drawn), 0),
            )

        place_ids = [place.id for place in selection.places]
        session = DrawSession(
            user_id=user_id,
            country=locale.country,
            city=locale.city,
            district=locale.district,
            requested_count=requested,
            ordered_place_ids=place_ids,
            won_tier=tier,
            reward_stored=item is not None,
            is_shortfall=selection.shortfall,
        )
        self._db.add(session)
        await self._db.flush()

        published = await self._trips.should_publish(locale.city, place_ids)
        if published:
            await self._trips.publish(session)

        logger.info(
            "Draw completed",
            user_id=user_id,
            city=locale.city,
            district=locale.district,
            drawn=drawn,
            requested=requested,
            tier=tier.value if tier else None,
            reward_stored=item is not None,
            inventory_full=inventory_full,
            published=published,
        )
        return DrawOutcome(
            draw_session_id=session.id,
            session_key=session.session_key,
            places=list(selection.places),
            requested_count=requested,
            shortfall=selection.shortfall,
            won_tier=tier,
            won_reward=won_reward,
            reward_stored=item is not None,
            inventory_full=inventory_full,
            published=published,
            trip_sequence=session.trip_sequence,
            daily_count=total,
            remaining_quota=max(limit - total, 0),
        )

    async def _pick_coupon(
        self,
        places: Sequence[PlaceRecord],
        tier: RewardTier,
    ) -> tuple[CouponRecord, PlaceRecord] | None:
        """Choose a coupon of ``tier`` from merchants behind the drawn places."""

        candidates: list[tuple[CouponRecord, PlaceRecord]] = []
        seen: set[UUID] = set()
        for place in places:
            if place.merchant_id is None or place.merchant_id in seen:
                continue
            seen.add(place.merchant_id)
            for coupon in await self._coupons.list_active_coupons(place.merchant_id):
                if coupon.rarity == tier:
                    candidates.append((coupon, place))
        if not candidates:
            return None
        candidates.sort(key=lambda pair: str(pair[0].id))
        return self._rng.choice(candidates)

    async def _notify_admission(self, user_id: str) -> None:
        try:
            await self._notifications.record_admission(user_id)
        except Exception:  # noqa: BLE001
            logger.exception("Notification sink failed after draw", user_id=user_id)


__all__ = ["DrawOutcome", "DrawService", "WonReward"]
