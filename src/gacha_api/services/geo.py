"""Distance math and category-aware radius deduplication."""

from __future__ import annotations

import math
from typing import Callable, Iterable, Sequence, TypeVar

EARTH_RADIUS_METERS = 6_371_000.0

_DEDUP_RADIUS_METERS: dict[str, float] = {
    "scenic": 200.0,
    "cultural": 200.0,
    "experience": 200.0,
    "food": 50.0,
    "shopping": 50.0,
    "activity": 100.0,
    "entertainment": 100.0,
    "lodging": 0.0,
}

T = TypeVar("T")


def distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle (haversine) distance between two coordinates."""

    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def is_within_radius(
    point1: tuple[float, float],
    point2: tuple[float, float],
    radius_meters: float,
) -> bool:
    return distance_meters(point1[0], point1[1], point2[0], point2[1]) <= radius_meters


def dedup_radius_meters(category: str | None) -> float:
    """Radius under which two places of ``category`` count as the same spot.

    Unknown categories and lodging return 0, which disables deduplication.
    """

    if not category:
        return 0.0
    return _DEDUP_RADIUS_METERS.get(str(category).lower(), 0.0)


def dedupe_by_radius(
    items: Sequence[T],
    *,
    category: Callable[[T], str | None],
    coordinates: Callable[[T], tuple[float, float] | None],
    score: Callable[[T], float],
    tiebreak: Callable[[T], object],
) -> list[T]:
    """Collapse same-category items closer than their category radius.

    Items are visited best score first (``tiebreak`` ascending on equal score),
    so the retained representative of each cluster is deterministic. Items
    without coordinates never collapse.
    """

    ranked = sorted(items, key=lambda item: (-score(item), tiebreak(item)))
    kept: list[T] = []
    for candidate in ranked:
        radius = dedup_radius_meters(category(candidate))
        point = coordinates(candidate)
        if radius > 0 and point is not None and _collides(candidate, point, radius, kept, category, coordinates):
            continue
        kept.append(candidate)
    return kept


def _collides(
    candidate: T,
    point: tuple[float, float],
    radius: float,
    kept: Iterable[T],
    category: Callable[[T], str | None],
    coordinates: Callable[[T], tuple[float, float] | None],
) -> bool:
    candidate_category = category(candidate)
    for other in kept:
        if category(other) != candidate_category:
            continue
        other_point = coordinates(other)
        if other_point is not None and is_within_radius(point, other_point, radius):
            return True
    return False


__all__ = [
    "dedup_radius_meters",
    "dedupe_by_radius",
    "distance_meters",
    "is_within_radius",
]
