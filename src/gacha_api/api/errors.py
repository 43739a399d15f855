"""Translate service-level errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from gacha_api.core.errors import GachaError, GachaErrorCode

_STATUS_BY_CODE: dict[GachaErrorCode, int] = {
    GachaErrorCode.ITEM_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    GachaErrorCode.NO_MERCHANT_CODE_SET: status.HTTP_404_NOT_FOUND,
    GachaErrorCode.ALREADY_REDEEMED: status.HTTP_409_CONFLICT,
    GachaErrorCode.INVENTORY_FULL: status.HTTP_409_CONFLICT,
    GachaErrorCode.ITEM_EXPIRED: status.HTTP_410_GONE,
    GachaErrorCode.MERCHANT_CODE_EXPIRED: status.HTTP_410_GONE,
    GachaErrorCode.REDEMPTION_EXPIRED: status.HTTP_410_GONE,
    GachaErrorCode.INVALID_CODE: status.HTTP_400_BAD_REQUEST,
    GachaErrorCode.NO_MERCHANT_LINK: status.HTTP_400_BAD_REQUEST,
    GachaErrorCode.INVALID_CONFIGURATION: status.HTTP_400_BAD_REQUEST,
    GachaErrorCode.QUOTA_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
    GachaErrorCode.STORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(code: GachaErrorCode) -> int:
    return _STATUS_BY_CODE.get(code, status.HTTP_400_BAD_REQUEST)


def to_http_exception(error: GachaError) -> HTTPException:
    headers = {"Retry-After": "1"} if error.retryable else None
    return HTTPException(status_code=status_for(error.code), detail=error.as_detail(), headers=headers)
