"""Merchant-code coupon redemption with a verify then confirm protocol."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gacha_api.core.clock import ensure_aware, local_date, utc_now
from gacha_api.core.errors import GachaError, GachaErrorCode
from gacha_api.core.settings import settings
from gacha_api.db.upsert import dialect_insert
from gacha_api.models.inventory import InventoryItem, InventoryItemStatus
from gacha_api.models.redemption import (
    CouponRedemption,
    CouponRedemptionStatus,
    MerchantRedemptionCode,
)
from gacha_api.observability.gacha import GachaObservabilityStore, get_gacha_store
from gacha_api.services.catalog import CouponCatalog, SqlCouponCatalog


def generate_merchant_code() -> str:
    return secrets.token_hex(4).upper()


def normalize_code(code: str) -> str:
    return code.strip().upper()


@dataclass
class RedemptionOutcome:
    success: bool
    item: InventoryItem
    redemption: CouponRedemption


class RedemptionService:
    """Redeem inventory coupons against a merchant's day-scoped code.

    ``redeem`` verifies the code and moves the item ``active -> verified``,
    opening a confirmation window. ``confirm`` completes it; the expiry sweep
    closes windows nobody confirmed and the item is treated as used.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        coupons: CouponCatalog | None = None,
        grace_seconds: int | None = None,
        store: GachaObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._coupons = coupons or SqlCouponCatalog(db_session)
        seconds = grace_seconds if grace_seconds is not None else settings.redemption_grace_seconds
        self._grace = timedelta(seconds=seconds)
        self._store = store or get_gacha_store()

    @property
    def grace_window(self) -> timedelta:
        return self._grace

    async def get_code(self, merchant_id: UUID) -> MerchantRedemptionCode | None:
        stmt = select(MerchantRedemptionCode).where(MerchantRedemptionCode.merchant_id == merchant_id)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def issue_code(self, merchant_id: UUID, *, now: datetime | None = None) -> MerchantRedemptionCode:
        """Replace the merchant's code with a freshly generated one."""

        issued_at = ensure_aware(now) if now is not None else utc_now()
        code = generate_merchant_code()
        stmt = dialect_insert(self._db, MerchantRedemptionCode).values(
            merchant_id=merchant_id,
            code=code,
            issued_at=issued_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["merchant_id"],
            set_={"code": code, "issued_at": issued_at},
        ).returning(MerchantRedemptionCode)
        result = await self._db.scalars(stmt, execution_options={"populate_existing": True})
        record = result.one()
        logger.info("Issued merchant redemption code", merchant_id=str(merchant_id))
        return record

    async def get_or_issue_daily_code(
        self,
        merchant_id: UUID,
        *,
        now: datetime | None = None,
    ) -> MerchantRedemptionCode:
        moment = ensure_aware(now) if now is not None else utc_now()
        existing = await self.get_code(merchant_id)
        if existing is not None and local_date(existing.issued_at) == local_date(moment):
            return existing
        return await self.issue_code(merchant_id, now=moment)

    async def _current_code(self, merchant_id: UUID, moment: datetime) -> MerchantRedemptionCode:
        record = await self.get_code(merchant_id)
        if record is None:
            raise GachaError(GachaErrorCode.NO_MERCHANT_CODE_SET, merchant_id=str(merchant_id))
        if local_date(record.issued_at) != local_date(moment):
            raise GachaError(GachaErrorCode.MERCHANT_CODE_EXPIRED, merchant_id=str(merchant_id))
        return record

    async def verify_merchant_code(
        self,
        merchant_id: UUID,
        code: str,
        *,
        now: datetime | None = None,
    ) -> bool:
        """Whether ``code`` matches today's code; missing or stale codes raise."""

        moment = ensure_aware(now) if now is not None else utc_now()
        record = await self._current_code(merchant_id, moment)
        return normalize_code(record.code) == normalize_code(code)

    async def _load_item(self, item_id: UUID, user_id: str) -> InventoryItem:
        stmt = select(InventoryItem).where(
            InventoryItem.id == item_id,
            InventoryItem.user_id == user_id,
            InventoryItem.status != InventoryItemStatus.DELETED,
        )
        result = await self._db.execute(stmt)
        item = result.scalar_one_or_none()
        if item is None:
            raise GachaError(GachaErrorCode.ITEM_NOT_FOUND, item_id=str(item_id))
        return item

    async def redeem(
        self,
        user_id: str,
        item_id: UUID,
        code: str,
        *,
        now: datetime | None = None,
    ) -> RedemptionOutcome:
        try:
            outcome = await self._redeem(user_id, item_id, code, ensure_aware(now) if now is not None else utc_now())
        except GachaError as exc:
            self._store.record_redemption(exc.code.value)
            logger.info("Redemption rejected", user_id=user_id, item_id=str(item_id), code=exc.code.value)
            raise
        self._store.record_redemption("verified")
        return outcome

    async def _redeem(self, user_id: str, item_id: UUID, code: str, moment: datetime) -> RedemptionOutcome:
        item = await self._load_item(item_id, user_id)
        if item.status in {InventoryItemStatus.VERIFIED, InventoryItemStatus.REDEEMED}:
            raise GachaError(GachaErrorCode.ALREADY_REDEEMED, item_id=str(item_id))
        if item.status == InventoryItemStatus.EXPIRED or (
            item.valid_until is not None and ensure_aware(item.valid_until) <= moment
        ):
            raise GachaError(GachaErrorCode.ITEM_EXPIRED, item_id=str(item_id))
        if item.merchant_id is None:
            raise GachaError(GachaErrorCode.NO_MERCHANT_LINK, item_id=str(item_id))

        record = await self._current_code(item.merchant_id, moment)
        if normalize_code(record.code) != normalize_code(code):
            raise GachaError(GachaErrorCode.INVALID_CODE, item_id=str(item_id))

        # Only one caller can move the item out of ``active``
        transition = (
            update(InventoryItem)
            .where(InventoryItem.id == item.id, InventoryItem.status == InventoryItemStatus.ACTIVE)
            .values(status=InventoryItemStatus.VERIFIED, redeemed_at=moment, updated_at=moment)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(transition)
        if not result.rowcount:
            raise GachaError(GachaErrorCode.ALREADY_REDEEMED, item_id=str(item_id))

        redemption = CouponRedemption(
            inventory_item_id=item.id,
            user_id=user_id,
            merchant_id=item.merchant_id,
            status=CouponRedemptionStatus.VERIFIED,
            verified_at=moment,
            expires_at=moment + self._grace,
        )
        self._db.add(redemption)
        if item.coupon_id is not None:
            await self._coupons.record_redemption(item.coupon_id)
        await self._db.flush()
        await self._db.refresh(item)

        logger.info(
            "Coupon redemption verified",
            user_id=user_id,
            item_id=str(item.id),
            merchant_id=str(item.merchant_id),
            redemption_id=str(redemption.id),
        )
        return RedemptionOutcome(success=True, item=item, redemption=redemption)

    async def confirm(
        self,
        redemption_id: UUID,
        user_id: str,
        *,
        now: datetime | None = None,
    ) -> RedemptionOutcome:
        moment = ensure_aware(now) if now is not None else utc_now()
        stmt = select(CouponRedemption).where(
            CouponRedemption.id == redemption_id,
            CouponRedemption.user_id == user_id,
        )
        redemption = (await self._db.execute(stmt)).scalar_one_or_none()
        if redemption is None:
            raise GachaError(GachaErrorCode.ITEM_NOT_FOUND, redemption_id=str(redemption_id))

        if redemption.status == CouponRedemptionStatus.CONFIRMED:
            item = await self._db.get(InventoryItem, redemption.inventory_item_id)
            return RedemptionOutcome(success=True, item=item, redemption=redemption)

        if redemption.status != CouponRedemptionStatus.VERIFIED or (
            redemption.expires_at is not None and ensure_aware(redemption.expires_at) <= moment
        ):
            self._store.record_redemption(GachaErrorCode.REDEMPTION_EXPIRED.value)
            raise GachaError(GachaErrorCode.REDEMPTION_EXPIRED, redemption_id=str(redemption_id))

        confirmed = await self._db.execute(
            update(CouponRedemption)
            .where(
                CouponRedemption.id == redemption.id,
                CouponRedemption.status == CouponRedemptionStatus.VERIFIED,
            )
            .values(status=CouponRedemptionStatus.CONFIRMED, confirmed_at=moment, updated_at=moment)
            .execution_options(synchronize_session=False)
        )
        if not confirmed.rowcount:
            # Lost a race against another confirm or the expiry sweep
            await self._db.refresh(redemption)
            if redemption.status != CouponRedemptionStatus.CONFIRMED:
                self._store.record_redemption(GachaErrorCode.REDEMPTION_EXPIRED.value)
                raise GachaError(GachaErrorCode.REDEMPTION_EXPIRED, redemption_id=str(redemption_id))
        else:
            await self._db.execute(
                update(InventoryItem)
                .where(
                    InventoryItem.id == redemption.inventory_item_id,
                    InventoryItem.status == InventoryItemStatus.VERIFIED,
                )
                .values(status=InventoryItemStatus.REDEEMED, updated_at=moment)
                .execution_options(synchronize_session=False)
            )
            await self._db.refresh(redemption)
            self._store.record_redemption("confirmed")
            logger.info("Coupon redemption confirmed", user_id=user_id, redemption_id=str(redemption.id))

        item = await self._db.get(InventoryItem, redemption.inventory_item_id, populate_existing=True)
        return RedemptionOutcome(success=True, item=item, redemption=redemption)

    async def expire_stale(self, now: datetime | None = None) -> int:
        """Close confirmation windows that lapsed; their items count as redeemed."""

        moment = ensure_aware(now) if now is not None else utc_now()
        stmt = select(CouponRedemption.id, CouponRedemption.inventory_item_id).where(
            CouponRedemption.status == CouponRedemptionStatus.VERIFIED,
            CouponRedemption.expires_at <= moment,
        )
        rows = (await self._db.execute(stmt)).all()
        if not rows:
            return 0

        redemption_ids = [row.id for row in rows]
        item_ids = [row.inventory_item_id for row in rows]
        result = await self._db.execute(
            update(CouponRedemption)
            .where(
                CouponRedemption.id.in_(redemption_ids),
                CouponRedemption.status == CouponRedemptionStatus.VERIFIED,
            )
            .values(status=CouponRedemptionStatus.EXPIRED, updated_at=moment)
            .execution_options(synchronize_session=False)
        )
        await self._db.execute(
            update(InventoryItem)
            .where(
                InventoryItem.id.in_(item_ids),
                InventoryItem.status == InventoryItemStatus.VERIFIED,
            )
            .values(status=InventoryItemStatus.REDEEMED, updated_at=moment)
            .execution_options(synchronize_session=False)
        )
        expired = int(result.rowcount or 0)
        if expired:
            logger.info("Expired unconfirmed redemptions", count=expired)
        return expired


__all__ = [
    "RedemptionOutcome",
    "RedemptionService",
    "generate_merchant_code",
    "normalize_code",
]
