"""API endpoints for place draws, quota, and place feedback."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from gacha_api.api.dependencies.session import require_session_user
from gacha_api.api.errors import to_http_exception
from gacha_api.core.errors import GachaError
from gacha_api.core.settings import settings
from gacha_api.db.session import get_session
from gacha_api.services.catalog import Locale, PlaceRecord
from gacha_api.services.gacha import DrawOutcome, DrawService, ExclusionLedger, QuotaTracker


router = APIRouter(prefix="/gacha", tags=["gacha"])


class DrawRequest(BaseModel):
    city: str = Field(..., min_length=1, description="City to draw places from")
    district: Optional[str] = Field(None, description="Optional district narrowing the pool")
    country: str = Field("", description="Country label stored with the draw")
    count: Optional[int] = Field(
        None,
        ge=1,
        le=settings.max_draw_count,
        description="Number of places to draw",
    )


class DrawnPlaceResponse(BaseModel):
    id: int
    name: str
    category: str
    district: Optional[str]
    rating: Optional[float]
    latitude: Optional[float]
    longitude: Optional[float]
    merchantId: Optional[UUID]


class WonRewardResponse(BaseModel):
    tier: str
    couponId: UUID
    merchantId: UUID
    title: str
    placeName: Optional[str]
    inventoryItemId: Optional[UUID]
    validUntil: Optional[datetime]


class DrawResponse(BaseModel):
    drawSessionId: int
    sessionKey: UUID
    places: List[DrawnPlaceResponse]
    requestedCount: int
    shortfall: bool
    wonTier: Optional[str]
    wonReward: Optional[WonRewardResponse]
    rewardStored: bool
    inventoryFull: bool
    published: bool
    tripSequence: Optional[int]
    dailyCount: int
    remainingQuota: int


class QuotaResponse(BaseModel):
    dailyLimit: int
    used: int
    remaining: int


class PlaceFeedbackRequest(BaseModel):
    placeName: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    district: Optional[str] = None


class PlaceFeedbackResponse(BaseModel):
    placeName: str
    penaltyScore: int
    excluded: bool


def _serialize_place(place: PlaceRecord) -> DrawnPlaceResponse:
    return DrawnPlaceResponse(
        id=place.id,
        name=place.name,
        category=place.category,
        district=place.district,
        rating=place.rating,
        latitude=place.latitude,
        longitude=place.longitude,
        merchantId=place.merchant_id,
    )


def _serialize_outcome(outcome: DrawOutcome) -> DrawResponse:
    reward = outcome.won_reward
    return DrawResponse(
        drawSessionId=outcome.draw_session_id,
        sessionKey=outcome.session_key,
        places=[_serialize_place(place) for place in outcome.places],
        requestedCount=outcome.requested_count,
        shortfall=outcome.shortfall,
        wonTier=outcome.won_tier.value if outcome.won_tier else None,
        wonReward=(
            WonRewardResponse(
                tier=reward.tier.value,
                couponId=reward.coupon_id,
                merchantId=reward.merchant_id,
                title=reward.title,
                placeName=reward.place_name,
                inventoryItemId=reward.inventory_item_id,
                validUntil=reward.valid_until,
            )
            if reward
            else None
        ),
        rewardStored=outcome.reward_stored,
        inventoryFull=outcome.inventory_full,
        published=outcome.published,
        tripSequence=outcome.trip_sequence,
        dailyCount=outcome.daily_count,
        remainingQuota=outcome.remaining_quota,
    )


@router.post("/draws", response_model=DrawResponse, status_code=status.HTTP_201_CREATED)
async def create_draw(
    payload: DrawRequest,
    user_id: str = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> DrawResponse:
    """Draw places for the session user and store any reward won."""

    locale = Locale(city=payload.city, district=payload.district or None, country=payload.country)
    try:
        outcome = await DrawService(db).draw(user_id, locale, payload.count)
    except GachaError as error:
        raise to_http_exception(error) from error
    return _serialize_outcome(outcome)


@router.get("/quota", response_model=QuotaResponse)
async def get_quota(
    user_id: str = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> QuotaResponse:
    tracker = QuotaTracker(db)
    used = await tracker.daily_count(user_id)
    return QuotaResponse(
        dailyLimit=tracker.daily_limit,
        used=used,
        remaining=max(tracker.daily_limit - used, 0),
    )


@router.post("/places/feedback", response_model=PlaceFeedbackResponse)
async def submit_place_feedback(
    payload: PlaceFeedbackRequest,
    user_id: str = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> PlaceFeedbackResponse:
    """Record a "not interested" signal; enough of them hide the place for this user."""

    ledger = ExclusionLedger(db)
    locale = Locale(city=payload.city, district=payload.district or None)
    record = await ledger.penalize(user_id, payload.placeName, locale)
    threshold = await ledger.threshold()
    penalty_score = record.penalty_score
    await db.commit()
    return PlaceFeedbackResponse(
        placeName=payload.placeName,
        penaltyScore=penalty_score,
        excluded=penalty_score >= threshold,
    )
