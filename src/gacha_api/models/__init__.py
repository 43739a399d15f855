"""SQLAlchemy models package."""

from .gacha import (  # noqa: F401
    DailyDrawCounter,
    DrawSession,
    ExclusionScope,
    GLOBAL_USER_KEY,
    PlaceExclusion,
    RewardTier,
    SystemConfig,
)
from .inventory import InventoryItem, InventoryItemStatus  # noqa: F401
from .notification import NotificationCounter  # noqa: F401
from .place import Coupon, Place, PlaceCategory  # noqa: F401
from .redemption import (  # noqa: F401
    CouponRedemption,
    CouponRedemptionStatus,
    MerchantRedemptionCode,
)
