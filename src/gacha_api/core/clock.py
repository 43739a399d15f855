"""Time helpers shared by quota, redemption, and expiry logic."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo

from gacha_api.core.settings import settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@lru_cache
def _resolve_zone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def local_zone() -> tzinfo:
    return _resolve_zone(settings.local_timezone)


def local_date(value: datetime | None = None) -> date:
    """Calendar date of ``value`` (default: now) at the server's day boundary."""

    moment = ensure_aware(value) if value is not None else utc_now()
    return moment.astimezone(local_zone()).date()


def end_of_local_day(value: datetime | None = None) -> datetime:
    """First instant of the next local calendar day, in UTC."""

    moment = ensure_aware(value) if value is not None else utc_now()
    local = moment.astimezone(local_zone())
    next_day = datetime.combine(local.date() + timedelta(days=1), time.min, tzinfo=local_zone())
    return next_day.astimezone(timezone.utc)
