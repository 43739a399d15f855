"""Draw sessions, quota counters, exclusions, and runtime configuration."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SqlEnum,
    Index,
    Integer,
    JSON,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from gacha_api.db.base import Base


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class RewardTier(str, Enum):
    """Reward rarity tiers in roll priority order (rarest first)."""

    SP = "SP"
    SSR = "SSR"
    SR = "SR"
    S = "S"
    R = "R"


class DrawSession(Base):
    """One gacha invocation and its ordered place result."""

    __tablename__ = "draw_sessions"
    __table_args__ = (
        Index("ix_draw_sessions_city_published", "city", "is_published"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_key = Column(UUID(as_uuid=True), nullable=False, unique=True, default=uuid4)
    user_id = Column(String(64), nullable=False, index=True)
    country = Column(String, nullable=False, default="", server_default="")
    city = Column(String, nullable=False)
    district = Column(String, nullable=True)
    requested_count = Column(Integer, nullable=False)
    ordered_place_ids = Column(JSON, nullable=False, default=list)
    won_tier = Column(SqlEnum(RewardTier, name="reward_tier", values_callable=_enum_values), nullable=True)
    reward_stored = Column(Boolean, nullable=False, default=False, server_default="false")
    is_shortfall = Column(Boolean, nullable=False, default=False, server_default="false")
    is_published = Column(Boolean, nullable=False, default=False, server_default="false")
    published_at = Column(DateTime(timezone=True), nullable=True)
    trip_sequence = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class DailyDrawCounter(Base):
    """Per-user, per-day draw tally gating the daily quota."""

    __tablename__ = "daily_draw_counters"
    __table_args__ = (
        UniqueConstraint("user_id", "day", name="uq_daily_draw_counters_user_day"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(String(64), nullable=False)
    day = Column(Date, nullable=False)
    draw_count = Column(Integer, nullable=False, default=0, server_default="0")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class ExclusionScope(str, Enum):
    """Whether an exclusion applies to one user or to everybody."""

    USER_SCORED = "user_scored"
    GLOBAL_PERMANENT = "global_permanent"


GLOBAL_USER_KEY = "*"


class PlaceExclusion(Base):
    """Penalty ledger entry suppressing a place from future draws."""

    __tablename__ = "place_exclusions"
    __table_args__ = (
        UniqueConstraint(
            "user_key",
            "place_name",
            "city",
            "district",
            name="uq_place_exclusions_user_place_locale",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    # user id for scored rows, GLOBAL_USER_KEY for global rows; keeps the unique key non-null
    user_key = Column(String(64), nullable=False)
    user_id = Column(String(64), nullable=True, index=True)
    place_name = Column(String, nullable=False)
    city = Column(String, nullable=False)
    district = Column(String, nullable=False, default="", server_default="")
    scope = Column(
        SqlEnum(ExclusionScope, name="exclusion_scope", values_callable=_enum_values),
        nullable=False,
        default=ExclusionScope.USER_SCORED,
    )
    penalty_score = Column(Integer, nullable=False, default=0, server_default="0")
    last_interacted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class SystemConfig(Base):
    """Administrator-editable runtime configuration value."""

    __tablename__ = "system_configs"
    __table_args__ = (
        UniqueConstraint("category", "key", name="uq_system_configs_category_key"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    category = Column(String(64), nullable=False)
    key = Column(String(128), nullable=False)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
