"""Coupon redemption services."""

from .redemption_service import RedemptionOutcome, RedemptionService, generate_merchant_code, normalize_code

__all__ = ["RedemptionOutcome", "RedemptionService", "generate_merchant_code", "normalize_code"]
