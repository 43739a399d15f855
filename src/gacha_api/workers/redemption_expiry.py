"""Worker closing lapsed redemption windows and expiring stale rewards."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from gacha_api.core.settings import settings
from gacha_api.observability.gacha import GachaObservabilityStore, get_gacha_store
from gacha_api.services.inventory import InventoryService
from gacha_api.services.notifications import NotificationSink
from gacha_api.services.redemption import RedemptionService

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]


class RedemptionExpiryWorker:
    """Periodically sweeps unconfirmed redemptions and out-of-date items."""

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        interval_seconds: int | None = None,
        notifications: NotificationSink | None = None,
        store: GachaObservabilityStore | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.redemption_expiry_interval_seconds
        self._notifications = notifications
        self._store = store or get_gacha_store()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info("Redemption expiry worker started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Redemption expiry worker stopped")

    async def run_once(self) -> Dict[str, int]:
        session = await self._ensure_session()
        async with session as managed_session:
            try:
                expired_redemptions = await RedemptionService(managed_session, store=self._store).expire_stale()
                inventory = InventoryService(managed_session)
                expired_items = await inventory.mark_expired_items()
                expiring = await inventory.expiring_counts() if self._notifications else {}
                await managed_session.commit()
            except Exception:
                await managed_session.rollback()
                raise

        self._store.record_sweep(expired_redemptions=expired_redemptions, expired_items=expired_items)
        for user_id, count in expiring.items():
            await self._notifications.record_expiring(user_id, count)

        summary = {
            "expired_redemptions": expired_redemptions,
            "expired_items": expired_items,
            "expiring_users": len(expiring),
        }
        logger.info("Redemption expiry sweep completed", **summary)
        return summary

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover
                logger.exception("Redemption expiry iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session


__all__ = ["RedemptionExpiryWorker"]
