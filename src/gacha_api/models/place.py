"""Place and coupon reference data read by the draw engine."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    Float,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from gacha_api.db.base import Base
from gacha_api.models.gacha import RewardTier


class PlaceCategory(str, Enum):
    """Catalog categories; each carries its own geo dedup radius."""

    FOOD = "food"
    SHOPPING = "shopping"
    SCENIC = "scenic"
    CULTURAL = "cultural"
    EXPERIENCE = "experience"
    ACTIVITY = "activity"
    ENTERTAINMENT = "entertainment"
    LODGING = "lodging"


class Place(Base):
    """Curated place that can be returned by a draw."""

    __tablename__ = "places"
    __table_args__ = (
        Index("ix_places_city_district_active", "city", "district", "is_active"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String, nullable=True, unique=True)
    name = Column(String, nullable=False)
    country = Column(String, nullable=False, default="", server_default="")
    city = Column(String, nullable=False)
    district = Column(String, nullable=True)
    category = Column(String(32), nullable=False)
    rating = Column(Float, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    photo_reference = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    merchant_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Coupon(Base):
    """Merchant coupon that can be won as a draw reward."""

    __tablename__ = "coupons"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    merchant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    title = Column(String, nullable=False)
    code = Column(String, nullable=True)
    terms = Column(Text, nullable=True)
    rarity = Column(
        SqlEnum(RewardTier, name="reward_tier", values_callable=lambda enum: [item.value for item in enum]),
        nullable=False,
        default=RewardTier.R,
    )
    remaining_quantity = Column(Integer, nullable=False, default=0, server_default="0")
    redeemed_count = Column(Integer, nullable=False, default=0, server_default="0")
    valid_days = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
