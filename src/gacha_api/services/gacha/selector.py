"""Candidate place selection for a single draw."""

from __future__ import annotations

import random
from dataclasses import dataclass, field

from loguru import logger

from gacha_api.services.catalog import Locale, PlaceCatalog, PlaceRecord
from gacha_api.services.gacha.exclusions import ExclusionLedger
from gacha_api.services.geo import dedupe_by_radius


@dataclass
class CandidateSelection:
    """Places chosen for a draw plus how many survived filtering."""

    places: list[PlaceRecord] = field(default_factory=list)
    shortfall: bool = False
    available: int = 0


class DrawSelector:
    """Filter, deduplicate, and sample places for a locale."""

    def __init__(
        self,
        catalog: PlaceCatalog,
        exclusions: ExclusionLedger,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._catalog = catalog
        self._exclusions = exclusions
        self._rng = rng or random.Random()

    async def select_candidates(
        self,
        locale: Locale,
        count: int,
        *,
        user_id: str | None = None,
    ) -> CandidateSelection:
        if count <= 0:
            return CandidateSelection()

        places = await self._catalog.list_active_places(locale)
        excluded = await self._exclusions.excluded_names(user_id, locale)
        eligible = [place for place in places if place.name not in excluded]
        survivors = dedupe_by_radius(
            eligible,
            category=lambda place: place.category,
            coordinates=lambda place: place.coordinates,
            score=lambda place: place.quality_score,
            tiebreak=lambda place: place.id,
        )
        # Sample from a stable order so a seeded generator reproduces the draw
        survivors.sort(key=lambda place: place.id)

        if len(survivors) <= count:
            chosen = list(survivors)
            self._rng.shuffle(chosen)
        else:
            chosen = self._rng.sample(survivors, count)

        shortfall = len(chosen) < count
        if shortfall:
            logger.warning(
                "Draw candidate shortfall",
                city=locale.city,
                district=locale.district,
                requested=count,
                available=len(survivors),
            )
        logger.debug(
            "Selected draw candidates",
            city=locale.city,
            fetched=len(places),
            excluded=len(places) - len(eligible),
            deduplicated=len(eligible) - len(survivors),
            chosen=len(chosen),
        )
        return CandidateSelection(places=chosen, shortfall=shortfall, available=len(survivors))


__all__ = ["CandidateSelection", "DrawSelector"]
