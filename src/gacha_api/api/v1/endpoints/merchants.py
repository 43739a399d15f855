"""Merchant console endpoints for day-scoped redemption codes."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from gacha_api.api.dependencies.security import require_merchant_api_key
from gacha_api.api.errors import to_http_exception
from gacha_api.core.clock import end_of_local_day, ensure_aware
from gacha_api.core.errors import GachaError
from gacha_api.db.session import get_session
from gacha_api.models.redemption import MerchantRedemptionCode
from gacha_api.services.redemption import RedemptionService


router = APIRouter(
    prefix="/merchants",
    tags=["merchants"],
    dependencies=[Depends(require_merchant_api_key)],
)


class DailyCodeResponse(BaseModel):
    merchantId: UUID
    code: str
    issuedAt: datetime
    expiresAt: datetime


class VerifyCodeRequest(BaseModel):
    merchantId: UUID
    code: str = Field(..., min_length=1, max_length=32)


class VerifyCodeResponse(BaseModel):
    merchantId: UUID
    isValid: bool


def _serialize_code(record: MerchantRedemptionCode) -> DailyCodeResponse:
    return DailyCodeResponse(
        merchantId=record.merchant_id,
        code=record.code,
        issuedAt=ensure_aware(record.issued_at),
        expiresAt=end_of_local_day(record.issued_at),
    )


@router.get("/{merchant_id}/daily-code", response_model=DailyCodeResponse)
async def get_daily_code(
    merchant_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> DailyCodeResponse:
    """Return today's code, issuing a fresh one when the stored code is from an earlier day."""

    record = await RedemptionService(db).get_or_issue_daily_code(merchant_id)
    await db.commit()
    return _serialize_code(record)


@router.post("/{merchant_id}/daily-code/rotate", response_model=DailyCodeResponse)
async def rotate_daily_code(
    merchant_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> DailyCodeResponse:
    record = await RedemptionService(db).issue_code(merchant_id)
    await db.commit()
    return _serialize_code(record)


@router.post("/verify-code", response_model=VerifyCodeResponse)
async def verify_code(
    payload: VerifyCodeRequest,
    db: AsyncSession = Depends(get_session),
) -> VerifyCodeResponse:
    try:
        is_valid = await RedemptionService(db).verify_merchant_code(payload.merchantId, payload.code)
    except GachaError as error:
        raise to_http_exception(error) from error
    return VerifyCodeResponse(merchantId=payload.merchantId, isValid=is_valid)
