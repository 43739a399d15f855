"""Read models and providers for the place and coupon catalogs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gacha_api.models.gacha import RewardTier
from gacha_api.models.place import Coupon, Place


@dataclass(frozen=True)
class Locale:
    """Draw location. ``district`` narrows the pool when present."""

    city: str
    district: str | None = None
    country: str = ""

    @property
    def district_key(self) -> str:
        return self.district or ""


@dataclass(frozen=True)
class PlaceRecord:
    """Immutable snapshot of a catalog place."""

    id: int
    name: str
    city: str
    district: str | None
    category: str
    rating: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    has_photo: bool = False
    has_description: bool = False
    merchant_id: UUID | None = None
    external_id: str | None = None

    @property
    def coordinates(self) -> tuple[float, float] | None:
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)

    @property
    def quality_score(self) -> float:
        """Rating-weighted completeness used to pick the survivor of a geo cluster."""

        return (
            (self.rating or 0.0) * 10
            + (3 if self.coordinates is not None else 0)
            + (2 if self.has_photo else 0)
            + (1 if self.has_description else 0)
        )

    @classmethod
    def from_model(cls, place: Place) -> "PlaceRecord":
        return cls(
            id=int(place.id),
            name=place.name,
            city=place.city,
            district=place.district,
            category=place.category,
            rating=place.rating,
            latitude=place.latitude,
            longitude=place.longitude,
            has_photo=bool(place.photo_reference),
            has_description=bool(place.description),
            merchant_id=place.merchant_id,
            external_id=place.external_id,
        )


@dataclass(frozen=True)
class CouponRecord:
    """Immutable snapshot of a merchant coupon."""

    id: UUID
    merchant_id: UUID
    title: str
    rarity: RewardTier
    code: str | None = None
    terms: str | None = None
    remaining_quantity: int = 0
    valid_days: int | None = None

    @classmethod
    def from_model(cls, coupon: Coupon) -> "CouponRecord":
        return cls(
            id=coupon.id,
            merchant_id=coupon.merchant_id,
            title=coupon.title,
            rarity=RewardTier(coupon.rarity),
            code=coupon.code,
            terms=coupon.terms,
            remaining_quantity=int(coupon.remaining_quantity or 0),
            valid_days=coupon.valid_days,
        )


class PlaceCatalog(Protocol):
    async def list_active_places(self, locale: Locale) -> list[PlaceRecord]: ...

    async def find_by_external_id(self, external_id: str) -> PlaceRecord | None: ...


class CouponCatalog(Protocol):
    async def list_active_coupons(self, merchant_id: UUID) -> list[CouponRecord]: ...

    async def decrement_remaining(self, coupon_id: UUID) -> bool: ...

    async def record_redemption(self, coupon_id: UUID) -> None: ...


class SqlPlaceCatalog:
    """Place catalog backed by the ``places`` table."""

    def __init__(self, db_session: AsyncSession, *, limit: int = 200) -> None:
        self._db = db_session
        self._limit = limit

    async def list_active_places(self, locale: Locale) -> list[PlaceRecord]:
        stmt = (
            select(Place)
            .where(Place.is_active.is_(True))
            .where(Place.city == locale.city)
            .order_by(Place.id.asc())
            .limit(self._limit)
        )
        if locale.district:
            stmt = stmt.where(Place.district == locale.district)
        result = await self._db.execute(stmt)
        places = [PlaceRecord.from_model(place) for place in result.scalars().all()]
        logger.debug(
            "Fetched active places",
            city=locale.city,
            district=locale.district,
            count=len(places),
        )
        return places

    async def find_by_external_id(self, external_id: str) -> PlaceRecord | None:
        stmt = select(Place).where(Place.external_id == external_id)
        result = await self._db.execute(stmt)
        place = result.scalar_one_or_none()
        return PlaceRecord.from_model(place) if place else None


class SqlCouponCatalog:
    """Coupon catalog backed by the ``coupons`` table."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def list_active_coupons(self, merchant_id: UUID) -> list[CouponRecord]:
        stmt = (
            select(Coupon)
            .where(Coupon.merchant_id == merchant_id)
            .where(Coupon.is_active.is_(True))
            .where(Coupon.remaining_quantity > 0)
            .order_by(Coupon.created_at.asc())
        )
        result = await self._db.execute(stmt)
        return [CouponRecord.from_model(coupon) for coupon in result.scalars().all()]

    async def decrement_remaining(self, coupon_id: UUID) -> bool:
        """Take one unit of stock; ``False`` when none was left to take."""

        stmt = (
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .where(Coupon.remaining_quantity > 0)
            .values(remaining_quantity=Coupon.remaining_quantity - 1)
        )
        result = await self._db.execute(stmt)
        return (result.rowcount or 0) > 0

    async def record_redemption(self, coupon_id: UUID) -> None:
        stmt = (
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .values(redeemed_count=Coupon.redeemed_count + 1)
        )
        await self._db.execute(stmt)


__all__ = [
    "CouponCatalog",
    "CouponRecord",
    "Locale",
    "PlaceCatalog",
    "PlaceRecord",
    "SqlCouponCatalog",
    "SqlPlaceCatalog",
]
