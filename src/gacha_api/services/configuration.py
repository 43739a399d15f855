"""Runtime configuration store with explicit invalidate-on-write memoization."""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, Tuple

from loguru import logger
from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gacha_api.core.settings import settings
from gacha_api.db.upsert import dialect_insert
from gacha_api.models.gacha import SystemConfig

_MISSING = object()

ConfigKey = Tuple[str, str]


@dataclass
class _CachedValue:
    value: Any
    loaded_at: float


class ConfigCache:
    """Process-wide memo of configuration rows.

    Entries live for ``ttl_seconds`` at most and are dropped synchronously by
    ``invalidate`` whenever a value is written through ``ConfigurationService``.
    """

    def __init__(self, ttl_seconds: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = Lock()
        self._entries: Dict[ConfigKey, _CachedValue] = {}
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> float:
        if self._ttl_seconds is not None:
            return self._ttl_seconds
        return settings.config_cache_ttl_seconds

    def lookup(self, key: ConfigKey) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return _MISSING
            if self._clock() - entry.loaded_at >= self.ttl_seconds:
                del self._entries[key]
                return _MISSING
            return entry.value

    def store(self, key: ConfigKey, value: Any) -> None:
        with self._lock:
            self._entries[key] = _CachedValue(value=value, loaded_at=self._clock())

    def invalidate(self, key: ConfigKey | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)


_CACHE = ConfigCache()


def get_config_cache() -> ConfigCache:
    return _CACHE


class ConfigurationService:
    """Read and write ``system_configs`` rows keyed by (category, key)."""

    def __init__(self, db_session: AsyncSession, *, cache: ConfigCache | None = None) -> None:
        self._db = db_session
        self._cache = cache or get_config_cache()

    async def get(self, category: str, key: str, default: Any = None) -> Any:
        cache_key = (category, key)
        cached = self._cache.lookup(cache_key)
        if cached is not _MISSING:
            return default if cached is None else cached

        stmt = select(SystemConfig.value).where(
            SystemConfig.category == category,
            SystemConfig.key == key,
        )
        result = await self._db.execute(stmt)
        value = result.scalar_one_or_none()
        self._cache.store(cache_key, value)
        return default if value is None else value

    async def set(self, category: str, key: str, value: Any) -> None:
        """Upsert a value and drop the memoized copy before returning."""

        stmt = dialect_insert(self._db, SystemConfig).values(category=category, key=key, value=value)
        stmt = stmt.on_conflict_do_update(
            index_elements=["category", "key"],
            set_={"value": value, "updated_at": func.now()},
        )
        await self._db.execute(stmt)
        cache_key = (category, key)
        self._cache.invalidate(cache_key)
        # Readers racing the open transaction may re-cache the old row; drop it again once committed
        event.listen(
            self._db.sync_session,
            "after_commit",
            lambda _session: self._cache.invalidate(cache_key),
            once=True,
        )
        logger.info("Updated runtime configuration", category=category, key=key)

    async def list_category(self, category: str) -> dict[str, Any]:
        stmt = select(SystemConfig).where(SystemConfig.category == category).order_by(SystemConfig.key.asc())
        result = await self._db.execute(stmt)
        return {row.key: row.value for row in result.scalars().all()}


__all__ = ["ConfigCache", "ConfigurationService", "get_config_cache"]
