"""Unread-badge notification sinks informed after inventory changes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gacha_api.db.upsert import dialect_insert
from gacha_api.models.notification import NotificationCounter

ITEMBOX_NOTIFICATION = "itembox"
EXPIRING_NOTIFICATION = "expiring"


class NotificationSink(Protocol):
    async def record_admission(self, user_id: str) -> None: ...

    async def record_expiring(self, user_id: str, count: int) -> None: ...


@dataclass
class NotificationRecord:
    user_id: str
    notification_type: str
    value: int


class InMemoryNotificationSink:
    """Collect notifications in memory, useful for tests and local runs."""

    def __init__(self) -> None:
        self.records: list[NotificationRecord] = []

    async def record_admission(self, user_id: str) -> None:
        self.records.append(NotificationRecord(user_id, ITEMBOX_NOTIFICATION, 1))

    async def record_expiring(self, user_id: str, count: int) -> None:
        self.records.append(NotificationRecord(user_id, EXPIRING_NOTIFICATION, count))


class NotificationCounterSink:
    """Maintain ``notification_counters`` rows in a session of its own.

    Runs after the caller's transaction committed; failures are logged and
    never reach the caller.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record_admission(self, user_id: str) -> None:
        await self._write(user_id, ITEMBOX_NOTIFICATION, increment=1)

    async def record_expiring(self, user_id: str, count: int) -> None:
        await self._write(user_id, EXPIRING_NOTIFICATION, absolute=count)

    async def _write(
        self,
        user_id: str,
        notification_type: str,
        *,
        increment: int | None = None,
        absolute: int | None = None,
    ) -> None:
        try:
            async with self._session_factory() as session:
                table = NotificationCounter.__table__
                initial = increment if increment is not None else absolute
                stmt = dialect_insert(session, table).values(
                    user_id=user_id,
                    notification_type=notification_type,
                    unread_count=initial,
                )
                new_value = table.c.unread_count + increment if increment is not None else absolute
                stmt = stmt.on_conflict_do_update(
                    index_elements=["user_id", "notification_type"],
                    set_={"unread_count": new_value, "updated_at": func.now()},
                )
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError:
            logger.exception(
                "Failed to update notification counter",
                user_id=user_id,
                notification_type=notification_type,
            )


__all__ = [
    "EXPIRING_NOTIFICATION",
    "ITEMBOX_NOTIFICATION",
    "InMemoryNotificationSink",
    "NotificationCounterSink",
    "NotificationRecord",
    "NotificationSink",
]
