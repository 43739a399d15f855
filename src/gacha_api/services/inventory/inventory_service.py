"""Capacity-bounded per-user reward inventory."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gacha_api.core.clock import ensure_aware, utc_now
from gacha_api.core.errors import GachaError, GachaErrorCode, StoreUnavailableError
from gacha_api.core.settings import settings
from gacha_api.models.gacha import RewardTier
from gacha_api.models.inventory import InventoryItem, InventoryItemStatus


@dataclass
class RewardGrant:
    """Reward about to be placed into an inventory slot."""

    tier: RewardTier | None
    coupon_id: UUID | None = None
    merchant_id: UUID | None = None
    valid_until: datetime | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class CapacitySnapshot:
    used: int
    max: int
    available: int
    is_full: bool


class InventoryService:
    """Slot bookkeeping for reward inventories.

    Slot uniqueness is enforced by a partial unique index on live rows, so
    concurrent admissions never share a slot: the loser of a race sees an
    ``IntegrityError``, rolls back, and retries against fresh occupancy.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        max_slots: int | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self._db = db_session
        self._max_slots = max_slots if max_slots is not None else settings.inventory_max_slots
        self._max_attempts = max_attempts if max_attempts is not None else settings.slot_claim_max_attempts

    @property
    def max_slots(self) -> int:
        return self._max_slots

    def _live(self, user_id: str):
        return (
            InventoryItem.user_id == user_id,
            InventoryItem.status != InventoryItemStatus.DELETED,
        )

    async def slot_count(self, user_id: str) -> int:
        stmt = select(func.count(InventoryItem.id)).where(*self._live(user_id))
        result = await self._db.execute(stmt)
        return int(result.scalar_one())

    async def is_full(self, user_id: str) -> bool:
        return await self.slot_count(user_id) >= self._max_slots

    async def capacity(self, user_id: str) -> CapacitySnapshot:
        used = await self.slot_count(user_id)
        available = max(self._max_slots - used, 0)
        return CapacitySnapshot(used=used, max=self._max_slots, available=available, is_full=available == 0)

    async def next_free_slot(self, user_id: str) -> int | None:
        stmt = select(InventoryItem.slot_index).where(*self._live(user_id)).order_by(InventoryItem.slot_index.asc())
        result = await self._db.execute(stmt)
        occupied = set(result.scalars().all())
        for slot in range(self._max_slots):
            if slot not in occupied:
                return slot
        return None

    async def admit(self, user_id: str, grant: RewardGrant) -> InventoryItem | None:
        """Place ``grant`` in the lowest free slot, or return ``None`` when full.

        A slot collision rolls back the session before retrying, so this must
        be the first write of the surrounding unit of work. Stock and other
        claims tied to the item belong after it.
        """

        for attempt in range(1, self._max_attempts + 1):
            slot = await self.next_free_slot(user_id)
            if slot is None:
                logger.info("Inventory full; reward not stored", user_id=user_id, max_slots=self._max_slots)
                return None

            item = InventoryItem(
                user_id=user_id,
                slot_index=slot,
                coupon_id=grant.coupon_id,
                merchant_id=grant.merchant_id,
                tier=grant.tier,
                payload=dict(grant.payload),
                status=InventoryItemStatus.ACTIVE,
                is_read=False,
                valid_until=grant.valid_until,
            )
            self._db.add(item)
            try:
                await self._db.flush()
            except IntegrityError:
                await self._db.rollback()
                logger.warning(
                    "Detected race when claiming inventory slot",
                    user_id=user_id,
                    slot_index=slot,
                    attempt=attempt,
                )
                continue

            logger.info("Admitted reward into inventory", user_id=user_id, slot_index=slot, item_id=str(item.id))
            return item

        raise StoreUnavailableError(
            "Could not claim an inventory slot",
            user_id=user_id,
            attempts=self._max_attempts,
        )

    async def _load_owned(self, item_id: UUID, user_id: str, *, include_deleted: bool = False) -> InventoryItem:
        stmt = select(InventoryItem).where(InventoryItem.id == item_id, InventoryItem.user_id == user_id)
        if not include_deleted:
            stmt = stmt.where(InventoryItem.status != InventoryItemStatus.DELETED)
        result = await self._db.execute(stmt)
        item = result.scalar_one_or_none()
        if item is None:
            raise GachaError(GachaErrorCode.ITEM_NOT_FOUND, item_id=str(item_id))
        return item

    async def get_item(self, item_id: UUID, user_id: str) -> InventoryItem:
        return await self._load_owned(item_id, user_id)

    async def list_items(self, user_id: str) -> Sequence[InventoryItem]:
        stmt = select(InventoryItem).where(*self._live(user_id)).order_by(InventoryItem.slot_index.asc())
        result = await self._db.execute(stmt)
        return result.scalars().all()

    async def unread_count(self, user_id: str) -> int:
        stmt = select(func.count(InventoryItem.id)).where(*self._live(user_id), InventoryItem.is_read.is_(False))
        result = await self._db.execute(stmt)
        return int(result.scalar_one())

    async def mark_read(self, item_id: UUID, *, user_id: str) -> InventoryItem:
        item = await self._load_owned(item_id, user_id)
        if not item.is_read:
            item.is_read = True
            await self._db.flush()
        return item

    async def soft_delete(self, item_id: UUID, user_id: str) -> InventoryItem:
        item = await self._load_owned(item_id, user_id, include_deleted=True)
        if item.status == InventoryItemStatus.DELETED:
            return item
        item.status = InventoryItemStatus.DELETED
        item.deleted_at = utc_now()
        await self._db.flush()
        logger.info("Soft deleted inventory item", user_id=user_id, item_id=str(item_id), slot_index=item.slot_index)
        return item

    async def list_expiring(
        self,
        user_id: str,
        days_ahead: int | None = None,
        now: datetime | None = None,
    ) -> Sequence[InventoryItem]:
        moment = ensure_aware(now) if now is not None else utc_now()
        horizon = moment + timedelta(days=days_ahead if days_ahead is not None else settings.inventory_expiring_days)
        stmt = (
            select(InventoryItem)
            .where(
                InventoryItem.user_id == user_id,
                InventoryItem.status == InventoryItemStatus.ACTIVE,
                InventoryItem.valid_until.is_not(None),
                InventoryItem.valid_until > moment,
                InventoryItem.valid_until <= horizon,
            )
            .order_by(InventoryItem.valid_until.asc())
        )
        result = await self._db.execute(stmt)
        return result.scalars().all()

    async def expiring_counts(
        self,
        days_ahead: int | None = None,
        now: datetime | None = None,
    ) -> dict[str, int]:
        """Number of soon-to-expire active items per user."""

        moment = ensure_aware(now) if now is not None else utc_now()
        horizon = moment + timedelta(days=days_ahead if days_ahead is not None else settings.inventory_expiring_days)
        stmt = (
            select(InventoryItem.user_id, func.count(InventoryItem.id))
            .where(
                InventoryItem.status == InventoryItemStatus.ACTIVE,
                InventoryItem.valid_until.is_not(None),
                InventoryItem.valid_until > moment,
                InventoryItem.valid_until <= horizon,
            )
            .group_by(InventoryItem.user_id)
        )
        result = await self._db.execute(stmt)
        return {user_id: int(count) for user_id, count in result.all()}

    async def mark_expired_items(self, now: datetime | None = None) -> int:
        """Move active items whose validity window has passed to ``expired``."""

        moment = ensure_aware(now) if now is not None else utc_now()
        stmt = (
            update(InventoryItem)
            .where(
                InventoryItem.status == InventoryItemStatus.ACTIVE,
                InventoryItem.valid_until.is_not(None),
                InventoryItem.valid_until <= moment,
            )
            .values(status=InventoryItemStatus.EXPIRED, updated_at=moment)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        expired = int(result.rowcount or 0)
        if expired:
            logger.info("Expired inventory items", count=expired)
        return expired


__all__ = ["CapacitySnapshot", "InventoryService", "RewardGrant"]
