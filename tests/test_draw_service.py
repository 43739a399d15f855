import asyncio
import random
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from gacha_api.core.errors import GachaError, GachaErrorCode, StoreUnavailableError
from gacha_api.models.gacha import DrawSession, RewardTier
from gacha_api.models.inventory import InventoryItem, InventoryItemStatus
from gacha_api.models.place import Coupon, Place
from gacha_api.observability.gacha import get_gacha_store
from gacha_api.services.catalog import Locale, SqlCouponCatalog
from gacha_api.services.configuration import ConfigurationService
from gacha_api.services.gacha import DrawService, QuotaTracker
from gacha_api.services.gacha.rarity import CONFIG_CATEGORY, RARITY_WEIGHTS_KEY
from gacha_api.services.notifications import ITEMBOX_NOTIFICATION, InMemoryNotificationSink

NOW = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
TAIPEI = Locale(city="Taipei", country="TW")


async def _seed_catalog(
    session,
    *,
    places: int = 8,
    tier: RewardTier = RewardTier.R,
    valid_days: int | None = 14,
    stock: int = 10,
):
    merchant_id = uuid4()
    session.add_all(
        [
            Place(
                name=f"Spot {index}",
                city="Taipei",
                category="scenic",
                rating=4.0,
                latitude=25.0 + index * 0.01,
                longitude=121.5,
                merchant_id=merchant_id,
            )
            for index in range(places)
        ]
    )
    coupon = Coupon(
        merchant_id=merchant_id,
        title="Half-price ticket",
        code="HALF",
        rarity=tier,
        remaining_quantity=stock,
        valid_days=valid_days,
    )
    session.add(coupon)
    await session.commit()
    return merchant_id, coupon.id


async def _set_weights(session, weights: dict[str, float]) -> None:
    await ConfigurationService(session).set(CONFIG_CATEGORY, RARITY_WEIGHTS_KEY, weights)
    await session.commit()


def _service(session, **overrides) -> DrawService:
    options = {"rng": random.Random(11), "notifications": InMemoryNotificationSink()}
    options.update(overrides)
    return DrawService(session, **options)


@pytest.mark.asyncio
async def test_draw_stores_reward_and_counts_places(session_factory) -> None:
    sink = InMemoryNotificationSink()
    async with session_factory() as session:
        merchant_id, coupon_id = await _seed_catalog(session)
        await _set_weights(session, {"R": 100})

        outcome = await _service(session, notifications=sink).draw("user-1", TAIPEI, 5, now=NOW)

        assert len(outcome.places) == 5
        assert not outcome.shortfall
        assert outcome.won_tier == RewardTier.R
        assert outcome.reward_stored
        assert not outcome.inventory_full
        assert outcome.won_reward.coupon_id == coupon_id
        assert outcome.won_reward.merchant_id == merchant_id
        assert outcome.won_reward.valid_until == NOW + timedelta(days=14)
        assert outcome.daily_count == 5
        assert outcome.remaining_quota == 31

    async with session_factory() as session:
        item = (await session.execute(select(InventoryItem))).scalar_one()
        assert item.user_id == "user-1"
        assert item.status == InventoryItemStatus.ACTIVE
        assert item.payload["title"] == "Half-price ticket"
        assert item.payload["placeName"].startswith("Spot ")
        coupon = (await session.execute(select(Coupon))).scalar_one()
        assert coupon.remaining_quantity == 9
        assert await QuotaTracker(session).daily_count("user-1", NOW) == 5

    assert [(record.user_id, record.notification_type) for record in sink.records] == [
        ("user-1", ITEMBOX_NOTIFICATION)
    ]
    snapshot = get_gacha_store().snapshot()
    assert snapshot.draws["total"] == 1
    assert snapshot.draws["rewards_stored"] == 1
    assert snapshot.tiers["R"] == 1


@pytest.mark.asyncio
async def test_draw_without_reward_when_roll_misses(session_factory) -> None:
    sink = InMemoryNotificationSink()
    async with session_factory() as session:
        await _seed_catalog(session)
        await _set_weights(session, {})

        outcome = await _service(session, notifications=sink).draw("user-1", TAIPEI, 3, now=NOW)

        assert outcome.won_tier is None
        assert outcome.won_reward is None
        assert not outcome.reward_stored
        assert outcome.daily_count == 3

    assert sink.records == []
    assert get_gacha_store().snapshot().tiers["none"] == 1


@pytest.mark.asyncio
async def test_rolled_tier_without_matching_coupon_stores_nothing(session_factory) -> None:
    async with session_factory() as session:
        await _seed_catalog(session, tier=RewardTier.SSR)
        await _set_weights(session, {"R": 100})

        outcome = await _service(session).draw("user-1", TAIPEI, 3, now=NOW)

        assert outcome.won_tier == RewardTier.R
        assert outcome.won_reward is None
        assert not outcome.reward_stored
        assert not outcome.inventory_full


@pytest.mark.asyncio
async def test_quota_exceeded_rejects_before_any_write(session_factory) -> None:
    async with session_factory() as session:
        await _seed_catalog(session)
        await _set_weights(session, {"R": 100})
        service = _service(session, daily_limit=8)

        await service.draw("user-1", TAIPEI, 5, now=NOW)
        with pytest.raises(GachaError) as excinfo:
            await service.draw("user-1", TAIPEI, 5, now=NOW)

        assert excinfo.value.code == GachaErrorCode.QUOTA_EXCEEDED
        assert excinfo.value.context["remaining"] == 3

    async with session_factory() as session:
        assert await QuotaTracker(session).daily_count("user-1", NOW) == 5
        sessions = (await session.execute(select(func.count(DrawSession.id)))).scalar_one()
        items = (await session.execute(select(func.count(InventoryItem.id)))).scalar_one()
        assert (sessions, items) == (1, 1)

    assert get_gacha_store().snapshot().draws["failed:QUOTA_EXCEEDED"] == 1


@pytest.mark.asyncio
async def test_quota_resets_the_next_day(session_factory) -> None:
    async with session_factory() as session:
        await _seed_catalog(session)
        service = _service(session, daily_limit=5)

        await service.draw("user-1", TAIPEI, 5, now=NOW)
        outcome = await service.draw("user-1", TAIPEI, 5, now=NOW + timedelta(days=1))

        assert outcome.daily_count == 5


@pytest.mark.asyncio
async def test_full_inventory_flags_outcome_but_keeps_places(session_factory) -> None:
    sink = InMemoryNotificationSink()
    async with session_factory() as session:
        await _seed_catalog(session)
        await _set_weights(session, {"R": 100})
        session.add(InventoryItem(user_id="user-1", slot_index=0, payload={}, status=InventoryItemStatus.ACTIVE))
        await session.commit()

        outcome = await _service(session, notifications=sink, max_slots=1).draw("user-1", TAIPEI, 4, now=NOW)

        assert outcome.won_tier == RewardTier.R
        assert outcome.won_reward is not None
        assert outcome.won_reward.inventory_item_id is None
        assert not outcome.reward_stored
        assert outcome.inventory_full
        assert outcome.daily_count == 4

    async with session_factory() as session:
        coupon = (await session.execute(select(Coupon))).scalar_one()
        assert coupon.remaining_quantity == 10

    assert sink.records == []
    assert get_gacha_store().snapshot().draws["rewards_dropped"] == 1


class _FailingCouponCatalog(SqlCouponCatalog):
    async def decrement_remaining(self, coupon_id):
        raise OperationalError("UPDATE coupons", {}, Exception("database is locked"))


@pytest.mark.asyncio
async def test_persistence_failure_rolls_back_whole_draw(session_factory) -> None:
    sink = InMemoryNotificationSink()
    async with session_factory() as session:
        await _seed_catalog(session)
        await _set_weights(session, {"R": 100})
        service = _service(session, notifications=sink, coupons=_FailingCouponCatalog(session))

        with pytest.raises(StoreUnavailableError) as excinfo:
            await service.draw("user-1", TAIPEI, 5, now=NOW)
        assert excinfo.value.code == GachaErrorCode.STORE_UNAVAILABLE
        assert excinfo.value.retryable

    async with session_factory() as session:
        assert await QuotaTracker(session).daily_count("user-1", NOW) == 0
        assert (await session.execute(select(func.count(InventoryItem.id)))).scalar_one() == 0
        assert (await session.execute(select(func.count(DrawSession.id)))).scalar_one() == 0

    assert sink.records == []


@pytest.mark.asyncio
async def test_shortfall_draw_counts_only_drawn_places(session_factory) -> None:
    async with session_factory() as session:
        await _seed_catalog(session, places=2)
        await _set_weights(session, {})

        outcome = await _service(session).draw("user-1", TAIPEI, 7, now=NOW)

        assert outcome.shortfall
        assert len(outcome.places) == 2
        assert outcome.daily_count == 2
        assert not outcome.published


@pytest.mark.asyncio
async def test_draw_publishes_new_trip_once(session_factory) -> None:
    async with session_factory() as session:
        await _seed_catalog(session, places=3)
        await _set_weights(session, {})
        service = _service(session)

        first = await service.draw("user-1", TAIPEI, 3, now=NOW)
        second = await service.draw("user-2", TAIPEI, 3, now=NOW)

        assert first.published
        assert first.trip_sequence == 1
        assert not second.published
        assert second.trip_sequence is None


@pytest.mark.asyncio
@pytest.mark.parametrize("count", [0, 13])
async def test_draw_count_out_of_range(session_factory, count) -> None:
    async with session_factory() as session:
        with pytest.raises(ValueError):
            await _service(session).draw("user-1", TAIPEI, count, now=NOW)


class _SoldOutCouponCatalog(SqlCouponCatalog):
    async def decrement_remaining(self, coupon_id):
        return False


@pytest.mark.asyncio
async def test_reward_dropped_when_stock_claim_fails(session_factory) -> None:
    sink = InMemoryNotificationSink()
    async with session_factory() as session:
        await _seed_catalog(session)
        await _set_weights(session, {"R": 100})
        service = _service(session, notifications=sink, coupons=_SoldOutCouponCatalog(session))

        outcome = await service.draw("user-1", TAIPEI, 4, now=NOW)

        assert outcome.won_tier == RewardTier.R
        assert outcome.won_reward is None
        assert not outcome.reward_stored
        assert not outcome.inventory_full
        assert outcome.daily_count == 4

    async with session_factory() as session:
        assert (await session.execute(select(func.count(InventoryItem.id)))).scalar_one() == 0
        session_row = (await session.execute(select(DrawSession))).scalar_one()
        assert not session_row.reward_stored

    assert sink.records == []


@pytest.mark.asyncio
async def test_concurrent_draws_never_overissue_last_coupon(file_session_factory) -> None:
    async with file_session_factory() as session:
        await _seed_catalog(session, stock=1)
        await _set_weights(session, {"R": 100})

    async def draw(user_id: str):
        async with file_session_factory() as session:
            return await _service(session).draw(user_id, TAIPEI, 3, now=NOW)

    outcomes = await asyncio.gather(draw("user-1"), draw("user-2"))

    assert sorted(outcome.reward_stored for outcome in outcomes) == [False, True]
    assert not any(outcome.inventory_full for outcome in outcomes)

    async with file_session_factory() as session:
        coupon = (await session.execute(select(Coupon))).scalar_one()
        assert coupon.remaining_quantity == 0
        assert (await session.execute(select(func.count(InventoryItem.id)))).scalar_one() == 1


@pytest.mark.asyncio
async def test_concurrent_draws_for_last_inventory_slot(file_session_factory) -> None:
    async with file_session_factory() as session:
        await _seed_catalog(session)
        await _set_weights(session, {"R": 100})
        session.add_all(
            [
                InventoryItem(user_id="racer", slot_index=index, payload={}, status=InventoryItemStatus.ACTIVE)
                for index in range(199)
            ]
        )
        await session.commit()

    async def draw():
        async with file_session_factory() as session:
            return await _service(session, max_slots=200).draw("racer", TAIPEI, 3, now=NOW)

    outcomes = await asyncio.gather(draw(), draw())

    assert sorted(outcome.reward_stored for outcome in outcomes) == [False, True]
    assert sorted(outcome.inventory_full for outcome in outcomes) == [False, True]

    async with file_session_factory() as session:
        slots = (
            await session.execute(select(func.count(InventoryItem.id)).where(InventoryItem.user_id == "racer"))
        ).scalar_one()
        assert slots == 200
        coupon = (await session.execute(select(Coupon))).scalar_one()
        assert coupon.remaining_quantity == 9
        assert await QuotaTracker(session).daily_count("racer", NOW) == 6
