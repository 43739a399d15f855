"""Gacha core tables.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


_ENUMS: dict[str, tuple[str, ...]] = {
    "reward_tier": ("SP", "SSR", "SR", "S", "R"),
    "exclusion_scope": ("user_scored", "global_permanent"),
    "inventory_item_status": ("active", "verified", "redeemed", "expired", "deleted"),
    "coupon_redemption_status": ("pending", "verified", "confirmed", "expired"),
}


def _enum(name: str) -> sa.types.TypeEngine:
    values = _ENUMS[name]
    return sa.Enum(*values, name=name).with_variant(
        postgresql.ENUM(*values, name=name, create_type=False),
        "postgresql",
    )


def _uuid() -> sa.types.TypeEngine:
    return postgresql.UUID(as_uuid=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name, values in _ENUMS.items():
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "places",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("country", sa.String(), nullable=False, server_default=""),
        sa.Column("city", sa.String(), nullable=False),
        sa.Column("district", sa.String(), nullable=True),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("rating", sa.Float(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("photo_reference", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("merchant_id", _uuid(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("external_id", name="uq_places_external_id"),
    )
    op.create_index("ix_places_city_district_active", "places", ["city", "district", "is_active"])
    op.create_index("ix_places_merchant_id", "places", ["merchant_id"])

    op.create_table(
        "coupons",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("merchant_id", _uuid(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("code", sa.String(), nullable=True),
        sa.Column("terms", sa.Text(), nullable=True),
        sa.Column("rarity", _enum("reward_tier"), nullable=False),
        sa.Column("remaining_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("redeemed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("valid_days", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_coupons_merchant_id", "coupons", ["merchant_id"])

    op.create_table(
        "draw_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("session_key", _uuid(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("country", sa.String(), nullable=False, server_default=""),
        sa.Column("city", sa.String(), nullable=False),
        sa.Column("district", sa.String(), nullable=True),
        sa.Column("requested_count", sa.Integer(), nullable=False),
        sa.Column("ordered_place_ids", sa.JSON(), nullable=False),
        sa.Column("won_tier", _enum("reward_tier"), nullable=True),
        sa.Column("reward_stored", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_shortfall", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trip_sequence", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("session_key", name="uq_draw_sessions_session_key"),
    )
    op.create_index("ix_draw_sessions_user_id", "draw_sessions", ["user_id"])
    op.create_index("ix_draw_sessions_city_published", "draw_sessions", ["city", "is_published"])

    op.create_table(
        "daily_draw_counters",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("draw_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "day", name="uq_daily_draw_counters_user_day"),
    )

    op.create_table(
        "place_exclusions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_key", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("place_name", sa.String(), nullable=False),
        sa.Column("city", sa.String(), nullable=False),
        sa.Column("district", sa.String(), nullable=False, server_default=""),
        sa.Column("scope", _enum("exclusion_scope"), nullable=False),
        sa.Column("penalty_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_interacted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint(
            "user_key",
            "place_name",
            "city",
            "district",
            name="uq_place_exclusions_user_place_locale",
        ),
    )
    op.create_index("ix_place_exclusions_user_id", "place_exclusions", ["user_id"])

    op.create_table(
        "system_configs",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("key", sa.String(128), nullable=False),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("category", "key", name="uq_system_configs_category_key"),
    )

    op.create_table(
        "inventory_items",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("slot_index", sa.Integer(), nullable=False),
        sa.Column("coupon_id", _uuid(), nullable=True),
        sa.Column("merchant_id", _uuid(), nullable=True),
        sa.Column("tier", _enum("reward_tier"), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", _enum("inventory_item_status"), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_inventory_items_user_id", "inventory_items", ["user_id"])
    op.create_index(
        "uq_inventory_items_user_slot_live",
        "inventory_items",
        ["user_id", "slot_index"],
        unique=True,
        postgresql_where=sa.text("status != 'deleted'"),
        sqlite_where=sa.text("status != 'deleted'"),
    )

    op.create_table(
        "merchant_redemption_codes",
        sa.Column("merchant_id", _uuid(), primary_key=True),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "coupon_redemptions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("inventory_item_id", _uuid(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("merchant_id", _uuid(), nullable=False),
        sa.Column("status", _enum("coupon_redemption_status"), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["inventory_item_id"],
            ["inventory_items.id"],
            name="fk_coupon_redemptions_inventory_item_id_inventory_items",
        ),
    )
    op.create_index("ix_coupon_redemptions_inventory_item_id", "coupon_redemptions", ["inventory_item_id"])
    op.create_index("ix_coupon_redemptions_user_id", "coupon_redemptions", ["user_id"])
    op.create_index("ix_coupon_redemptions_expires_at", "coupon_redemptions", ["expires_at"])

    op.create_table(
        "notification_counters",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("notification_type", sa.String(32), nullable=False),
        sa.Column("unread_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "notification_type", name="uq_notification_counters_user_type"),
    )


def downgrade() -> None:
    op.drop_table("notification_counters")
    op.drop_index("ix_coupon_redemptions_expires_at", table_name="coupon_redemptions")
    op.drop_index("ix_coupon_redemptions_user_id", table_name="coupon_redemptions")
    op.drop_index("ix_coupon_redemptions_inventory_item_id", table_name="coupon_redemptions")
    op.drop_table("coupon_redemptions")
    op.drop_table("merchant_redemption_codes")
    op.drop_index("uq_inventory_items_user_slot_live", table_name="inventory_items")
    op.drop_index("ix_inventory_items_user_id", table_name="inventory_items")
    op.drop_table("inventory_items")
    op.drop_table("system_configs")
    op.drop_index("ix_place_exclusions_user_id", table_name="place_exclusions")
    op.drop_table("place_exclusions")
    op.drop_table("daily_draw_counters")
    op.drop_index("ix_draw_sessions_city_published", table_name="draw_sessions")
    op.drop_index("ix_draw_sessions_user_id", table_name="draw_sessions")
    op.drop_table("draw_sessions")
    op.drop_index("ix_coupons_merchant_id", table_name="coupons")
    op.drop_table("coupons")
    op.drop_index("ix_places_merchant_id", table_name="places")
    op.drop_index("ix_places_city_district_active", table_name="places")
    op.drop_table("places")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name, values in _ENUMS.items():
            postgresql.ENUM(*values, name=name).drop(bind, checkfirst=True)
