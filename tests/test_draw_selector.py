import random

import pytest

from gacha_api.models.place import Place
from gacha_api.services.catalog import Locale, PlaceRecord, SqlPlaceCatalog
from gacha_api.services.gacha import DrawSelector, ExclusionLedger

TAIPEI = Locale(city="Taipei")


class _StaticCatalog:
    def __init__(self, places: list[PlaceRecord]) -> None:
        self._places = places

    async def list_active_places(self, locale: Locale) -> list[PlaceRecord]:
        return [place for place in self._places if place.city == locale.city]

    async def find_by_external_id(self, external_id: str) -> PlaceRecord | None:
        return None


def _place(place_id: int, name: str, *, category: str = "scenic", lat: float | None = None, rating: float = 4.0):
    return PlaceRecord(
        id=place_id,
        name=name,
        city="Taipei",
        district=None,
        category=category,
        rating=rating,
        latitude=lat,
        longitude=121.5 if lat is not None else None,
    )


def _spread_places(count: int) -> list[PlaceRecord]:
    # 0.01 degrees apart, far outside any dedup radius
    return [_place(index, f"Place {index}", lat=25.0 + index * 0.01) for index in range(1, count + 1)]


@pytest.mark.asyncio
async def test_selects_requested_count_without_duplicates(session_factory) -> None:
    async with session_factory() as session:
        selector = DrawSelector(_StaticCatalog(_spread_places(20)), ExclusionLedger(session), rng=random.Random(7))
        selection = await selector.select_candidates(TAIPEI, 7, user_id="user-1")

    assert len(selection.places) == 7
    assert len({place.id for place in selection.places}) == 7
    assert not selection.shortfall
    assert selection.available == 20


@pytest.mark.asyncio
async def test_seeded_generator_reproduces_selection(session_factory) -> None:
    places = _spread_places(15)
    async with session_factory() as session:
        ledger = ExclusionLedger(session)
        first = await DrawSelector(_StaticCatalog(places), ledger, rng=random.Random(42)).select_candidates(TAIPEI, 5)
        second = await DrawSelector(
            _StaticCatalog(list(reversed(places))),
            ledger,
            rng=random.Random(42),
        ).select_candidates(TAIPEI, 5)

    assert [place.id for place in first.places] == [place.id for place in second.places]


@pytest.mark.asyncio
async def test_shortfall_returns_every_survivor(session_factory) -> None:
    async with session_factory() as session:
        selector = DrawSelector(_StaticCatalog(_spread_places(4)), ExclusionLedger(session), rng=random.Random(1))
        selection = await selector.select_candidates(TAIPEI, 7)

    assert selection.shortfall
    assert sorted(place.id for place in selection.places) == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_excluded_and_clustered_places_are_dropped(session_factory) -> None:
    places = [
        _place(1, "Dumpling House", category="food", lat=25.0, rating=4.8),
        _place(2, "Dumpling House Annex", category="food", lat=25.0002, rating=3.1),
        _place(3, "Sky Deck", category="scenic", lat=25.1),
        _place(4, "Closed Gallery", category="cultural", lat=25.2),
    ]
    async with session_factory() as session:
        ledger = ExclusionLedger(session)
        await ledger.global_exclude("Closed Gallery", TAIPEI)
        await session.commit()

        selection = await DrawSelector(_StaticCatalog(places), ledger, rng=random.Random(3)).select_candidates(
            TAIPEI, 4
        )

    assert sorted(place.id for place in selection.places) == [1, 3]
    assert selection.shortfall
    assert selection.available == 2


@pytest.mark.asyncio
async def test_sql_catalog_filters_city_district_and_inactive(session_factory) -> None:
    async with session_factory() as session:
        session.add_all(
            [
                Place(name="A", city="Taipei", district="Daan", category="food"),
                Place(name="B", city="Taipei", district="Xinyi", category="food"),
                Place(name="C", city="Taipei", district="Daan", category="food", is_active=False),
                Place(name="D", city="Tainan", district="Daan", category="food"),
            ]
        )
        await session.commit()

        catalog = SqlPlaceCatalog(session)
        city_wide = await catalog.list_active_places(Locale(city="Taipei"))
        district = await catalog.list_active_places(Locale(city="Taipei", district="Daan"))

    assert [place.name for place in city_wide] == ["A", "B"]
    assert [place.name for place in district] == ["A"]


@pytest.mark.asyncio
async def test_city_wide_exclusion_applies_to_district_draws(session_factory) -> None:
    daan = Locale(city="Taipei", district="Daan")
    async with session_factory() as session:
        session.add_all(
            [
                Place(name="Closed Shrine", city="Taipei", district="Daan", category="scenic", latitude=25.0, longitude=121.5),
                Place(name="Open Garden", city="Taipei", district="Daan", category="scenic", latitude=25.1, longitude=121.5),
            ]
        )
        ledger = ExclusionLedger(session)
        await ledger.global_exclude("Closed Shrine", Locale(city="Taipei"))
        await session.commit()

        selector = DrawSelector(SqlPlaceCatalog(session), ledger, rng=random.Random(3))
        selection = await selector.select_candidates(daan, 3, user_id="user-1")

    assert [place.name for place in selection.places] == ["Open Garden"]
    assert selection.shortfall


@pytest.mark.asyncio
async def test_sql_catalog_finds_place_by_external_id(session_factory) -> None:
    async with session_factory() as session:
        session.add(Place(name="Lantern Alley", external_id="poi-42", city="Taipei", category="scenic"))
        await session.commit()

        catalog = SqlPlaceCatalog(session)
        found = await catalog.find_by_external_id("poi-42")
        missing = await catalog.find_by_external_id("poi-404")

    assert found is not None
    assert found.name == "Lantern Alley"
    assert found.city == "Taipei"
    assert missing is None
