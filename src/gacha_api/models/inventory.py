"""Capacity-bounded reward inventory."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    Index,
    Integer,
    JSON,
    String,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from gacha_api.db.base import Base
from gacha_api.models.gacha import RewardTier


class InventoryItemStatus(str, Enum):
    """Lifecycle of an inventory item. Rows are never physically removed."""

    ACTIVE = "active"
    VERIFIED = "verified"
    REDEEMED = "redeemed"
    EXPIRED = "expired"
    DELETED = "deleted"


class InventoryItem(Base):
    """Reward occupying one inventory slot of a user."""

    __tablename__ = "inventory_items"
    __table_args__ = (
        # A slot may be reused once its previous occupant is soft deleted
        Index(
            "uq_inventory_items_user_slot_live",
            "user_id",
            "slot_index",
            unique=True,
            postgresql_where=text("status != 'deleted'"),
            sqlite_where=text("status != 'deleted'"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(String(64), nullable=False, index=True)
    slot_index = Column(Integer, nullable=False)
    coupon_id = Column(UUID(as_uuid=True), nullable=True)
    merchant_id = Column(UUID(as_uuid=True), nullable=True)
    tier = Column(
        SqlEnum(RewardTier, name="reward_tier", values_callable=lambda enum: [item.value for item in enum]),
        nullable=True,
    )
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(
        SqlEnum(
            InventoryItemStatus,
            name="inventory_item_status",
            values_callable=lambda enum: [item.value for item in enum],
        ),
        nullable=False,
        default=InventoryItemStatus.ACTIVE,
    )
    is_read = Column(Boolean, nullable=False, default=False, server_default="false")
    valid_until = Column(DateTime(timezone=True), nullable=True)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def is_redeemed(self) -> bool:
        return self.status in {InventoryItemStatus.VERIFIED, InventoryItemStatus.REDEEMED}
