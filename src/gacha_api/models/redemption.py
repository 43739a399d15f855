"""Merchant redemption codes and coupon redemption records."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from gacha_api.db.base import Base


class MerchantRedemptionCode(Base):
    """Day-scoped code a merchant shows to customers redeeming in person."""

    __tablename__ = "merchant_redemption_codes"

    merchant_id = Column(UUID(as_uuid=True), primary_key=True)
    code = Column(String(32), nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False)


class CouponRedemptionStatus(str, Enum):
    """Lifecycle statuses for a redemption attempt."""

    PENDING = "pending"
    VERIFIED = "verified"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"


class CouponRedemption(Base):
    """Verified redemption awaiting confirmation inside the grace window."""

    __tablename__ = "coupon_redemptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    inventory_item_id = Column(
        UUID(as_uuid=True),
        ForeignKey("inventory_items.id"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(64), nullable=False, index=True)
    merchant_id = Column(UUID(as_uuid=True), nullable=False)
    status = Column(
        SqlEnum(
            CouponRedemptionStatus,
            name="coupon_redemption_status",
            values_callable=lambda enum: [item.value for item in enum],
        ),
        nullable=False,
        default=CouponRedemptionStatus.PENDING,
    )
    verified_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    inventory_item = relationship("InventoryItem")
