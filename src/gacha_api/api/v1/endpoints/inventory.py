"""API endpoints for the reward inventory and coupon redemption."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from gacha_api.api.dependencies.session import require_session_user
from gacha_api.api.errors import to_http_exception
from gacha_api.core.errors import GachaError
from gacha_api.core.settings import settings
from gacha_api.db.session import get_session
from gacha_api.models.inventory import InventoryItem
from gacha_api.models.redemption import CouponRedemption
from gacha_api.services.inventory import InventoryService
from gacha_api.services.redemption import RedemptionOutcome, RedemptionService


router = APIRouter(prefix="/inventory", tags=["inventory"])


class InventoryItemResponse(BaseModel):
    id: UUID
    slotIndex: int
    tier: Optional[str]
    status: str
    isRead: bool
    isRedeemed: bool
    couponId: Optional[UUID]
    merchantId: Optional[UUID]
    payload: dict[str, Any]
    validUntil: Optional[datetime]
    redeemedAt: Optional[datetime]
    createdAt: Optional[datetime]


class InventoryResponse(BaseModel):
    items: List[InventoryItemResponse]
    unreadCount: int
    used: int
    max: int


class CapacityResponse(BaseModel):
    used: int
    max: int
    available: int
    isFull: bool


class RedeemRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=32, description="Code shown by the merchant")


class RedemptionResponse(BaseModel):
    id: UUID
    status: str
    verifiedAt: Optional[datetime]
    expiresAt: Optional[datetime]
    confirmedAt: Optional[datetime]


class RedeemResponse(BaseModel):
    success: bool
    item: InventoryItemResponse
    redemption: RedemptionResponse


def _serialize_item(item: InventoryItem) -> InventoryItemResponse:
    return InventoryItemResponse(
        id=item.id,
        slotIndex=item.slot_index,
        tier=item.tier.value if item.tier else None,
        status=item.status.value,
        isRead=item.is_read,
        isRedeemed=item.is_redeemed,
        couponId=item.coupon_id,
        merchantId=item.merchant_id,
        payload=item.payload or {},
        validUntil=item.valid_until,
        redeemedAt=item.redeemed_at,
        createdAt=item.created_at,
    )


def _serialize_redemption(redemption: CouponRedemption) -> RedemptionResponse:
    return RedemptionResponse(
        id=redemption.id,
        status=redemption.status.value,
        verifiedAt=redemption.verified_at,
        expiresAt=redemption.expires_at,
        confirmedAt=redemption.confirmed_at,
    )


def _serialize_outcome(outcome: RedemptionOutcome) -> RedeemResponse:
    return RedeemResponse(
        success=outcome.success,
        item=_serialize_item(outcome.item),
        redemption=_serialize_redemption(outcome.redemption),
    )


@router.get("", response_model=InventoryResponse)
async def get_inventory(
    user_id: str = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> InventoryResponse:
    service = InventoryService(db)
    items = await service.list_items(user_id)
    return InventoryResponse(
        items=[_serialize_item(item) for item in items],
        unreadCount=await service.unread_count(user_id),
        used=len(items),
        max=service.max_slots,
    )


@router.get("/capacity", response_model=CapacityResponse)
async def get_capacity(
    user_id: str = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> CapacityResponse:
    snapshot = await InventoryService(db).capacity(user_id)
    return CapacityResponse(
        used=snapshot.used,
        max=snapshot.max,
        available=snapshot.available,
        isFull=snapshot.is_full,
    )


@router.get("/expiring", response_model=List[InventoryItemResponse])
async def list_expiring_items(
    days: int = Query(settings.inventory_expiring_days, ge=1, le=90),
    user_id: str = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> List[InventoryItemResponse]:
    items = await InventoryService(db).list_expiring(user_id, days_ahead=days)
    return [_serialize_item(item) for item in items]


@router.post("/redemptions/{redemption_id}/confirm", response_model=RedeemResponse)
async def confirm_redemption(
    redemption_id: UUID,
    user_id: str = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> RedeemResponse:
    """Complete a verified redemption inside its confirmation window."""

    try:
        outcome = await RedemptionService(db).confirm(redemption_id, user_id)
    except GachaError as error:
        await db.rollback()
        raise to_http_exception(error) from error
    await db.commit()
    return _serialize_outcome(outcome)


@router.get("/{item_id}", response_model=InventoryItemResponse)
async def get_inventory_item(
    item_id: UUID,
    user_id: str = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> InventoryItemResponse:
    """Fetch an item; opening it clears its unread flag."""

    try:
        item = await InventoryService(db).mark_read(item_id, user_id=user_id)
    except GachaError as error:
        raise to_http_exception(error) from error
    await db.commit()
    return _serialize_item(item)


@router.delete("/{item_id}", response_model=InventoryItemResponse)
async def delete_inventory_item(
    item_id: UUID,
    user_id: str = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> InventoryItemResponse:
    try:
        item = await InventoryService(db).soft_delete(item_id, user_id)
    except GachaError as error:
        raise to_http_exception(error) from error
    await db.commit()
    return _serialize_item(item)


@router.post("/{item_id}/redeem", response_model=RedeemResponse)
async def redeem_inventory_item(
    item_id: UUID,
    payload: RedeemRequest,
    user_id: str = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> RedeemResponse:
    """Verify the merchant code and open the confirmation window."""

    try:
        outcome = await RedemptionService(db).redeem(user_id, item_id, payload.code)
    except GachaError as error:
        await db.rollback()
        raise to_http_exception(error) from error
    await db.commit()
    return _serialize_outcome(outcome)
