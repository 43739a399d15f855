"""Error taxonomy shared by the draw, inventory, and redemption services."""

from __future__ import annotations

from enum import Enum
from typing import Any


class GachaErrorCode(str, Enum):
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    INVENTORY_FULL = "INVENTORY_FULL"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    ALREADY_REDEEMED = "ALREADY_REDEEMED"
    ITEM_EXPIRED = "ITEM_EXPIRED"
    NO_MERCHANT_CODE_SET = "NO_MERCHANT_CODE_SET"
    MERCHANT_CODE_EXPIRED = "MERCHANT_CODE_EXPIRED"
    INVALID_CODE = "INVALID_CODE"
    NO_MERCHANT_LINK = "NO_MERCHANT_LINK"
    REDEMPTION_EXPIRED = "REDEMPTION_EXPIRED"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


_DEFAULT_MESSAGES: dict[GachaErrorCode, str] = {
    GachaErrorCode.QUOTA_EXCEEDED: "Daily draw quota exhausted",
    GachaErrorCode.INVENTORY_FULL: "Inventory is full",
    GachaErrorCode.ITEM_NOT_FOUND: "Inventory item not found",
    GachaErrorCode.ALREADY_REDEEMED: "Coupon has already been redeemed",
    GachaErrorCode.ITEM_EXPIRED: "Coupon has expired",
    GachaErrorCode.NO_MERCHANT_CODE_SET: "Merchant has not issued a redemption code",
    GachaErrorCode.MERCHANT_CODE_EXPIRED: "Merchant redemption code has expired",
    GachaErrorCode.INVALID_CODE: "Redemption code does not match",
    GachaErrorCode.NO_MERCHANT_LINK: "Coupon is not linked to a merchant",
    GachaErrorCode.REDEMPTION_EXPIRED: "Redemption confirmation window has closed",
    GachaErrorCode.INVALID_CONFIGURATION: "Configuration value rejected",
    GachaErrorCode.STORE_UNAVAILABLE: "Storage temporarily unavailable, retry the request",
}


class GachaError(Exception):
    """Expected failure carrying a taxonomy code and structured context."""

    def __init__(self, code: GachaErrorCode, message: str | None = None, **context: Any) -> None:
        self.code = code
        self.message = message or _DEFAULT_MESSAGES[code]
        self.context = context
        super().__init__(f"{code.value}: {self.message}")

    @property
    def retryable(self) -> bool:
        return self.code == GachaErrorCode.STORE_UNAVAILABLE

    def as_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.context:
            detail["context"] = self.context
        return detail


class StoreUnavailableError(GachaError):
    """Transient persistence failure; the whole unit of work was rolled back."""

    def __init__(self, message: str | None = None, **context: Any) -> None:
        super().__init__(GachaErrorCode.STORE_UNAVAILABLE, message, **context)


class RarityConfigurationError(RuntimeError):
    """Stored rarity weights violate the table invariant."""
