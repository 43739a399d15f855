import pytest
from httpx import ASGITransport, AsyncClient

from gacha_api.core.settings import settings


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_rarity_weights_round_trip(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        defaults = await client.get("/api/v1/admin/gacha/rarity-weights")
        assert defaults.status_code == 200
        assert defaults.json()["weights"]["SP"] == 2
        assert defaults.json()["noRewardWeight"] == 20

        updated = await client.put(
            "/api/v1/admin/gacha/rarity-weights",
            json={"weights": {"SP": 5, "SSR": 10, "SR": 15, "S": 20, "R": 40}},
        )
        assert updated.status_code == 200
        assert updated.json()["noRewardWeight"] == 10

        current = await client.get("/api/v1/admin/gacha/rarity-weights")
        assert current.json()["weights"]["SP"] == 5


@pytest.mark.asyncio
async def test_rarity_weights_over_one_hundred_are_rejected(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        rejected = await client.put(
            "/api/v1/admin/gacha/rarity-weights",
            json={"weights": {"SP": 60, "R": 60}},
        )
        current = await client.get("/api/v1/admin/gacha/rarity-weights")

    assert rejected.status_code == 400
    assert rejected.json()["detail"]["code"] == "INVALID_CONFIGURATION"
    assert current.json()["weights"]["SP"] == 2


@pytest.mark.asyncio
async def test_generic_config_endpoints(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        missing = await client.get("/api/v1/admin/configs/gacha/exclusion_threshold")
        assert missing.status_code == 404

        stored = await client.put("/api/v1/admin/configs/gacha/exclusion_threshold", json={"value": 5})
        assert stored.status_code == 200

        invalid = await client.put("/api/v1/admin/configs/gacha/exclusion_threshold", json={"value": 0})
        assert invalid.status_code == 400

        weights = await client.put("/api/v1/admin/configs/gacha/rarity_weights", json={"value": "heavy"})
        assert weights.status_code == 400

        await client.put("/api/v1/admin/configs/banners/home", json={"value": {"title": "Summer"}})

        fetched = await client.get("/api/v1/admin/configs/gacha/exclusion_threshold")
        listed = await client.get("/api/v1/admin/configs/banners")

    assert fetched.json() == {"category": "gacha", "key": "exclusion_threshold", "value": 5}
    assert listed.json() == [{"category": "banners", "key": "home", "value": {"title": "Summer"}}]


@pytest.mark.asyncio
async def test_global_exclusion_endpoints(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        created = await client.post(
            "/api/v1/admin/exclusions",
            json={"placeName": "Closed Zoo", "city": "Taipei", "district": "Wenshan"},
        )
        assert created.status_code == 201
        exclusion = created.json()
        assert exclusion["scope"] == "global_permanent"
        assert exclusion["district"] == "Wenshan"

        listed = await client.get("/api/v1/admin/exclusions", params={"city": "Taipei"})
        assert [item["id"] for item in listed.json()] == [exclusion["id"]]

        other_city = await client.get("/api/v1/admin/exclusions", params={"city": "Tainan"})
        assert other_city.json() == []

        deleted = await client.delete(f"/api/v1/admin/exclusions/{exclusion['id']}")
        assert deleted.status_code == 204

        again = await client.delete(f"/api/v1/admin/exclusions/{exclusion['id']}")
        assert again.status_code == 404


@pytest.mark.asyncio
async def test_admin_routes_require_api_key_when_configured(app_with_db, monkeypatch) -> None:
    monkeypatch.setattr(settings, "admin_api_key", "admin-secret")
    app, _ = app_with_db

    async with _client(app) as client:
        denied = await client.get("/api/v1/admin/gacha/rarity-weights", headers={"X-API-Key": "wrong"})
        allowed = await client.get("/api/v1/admin/gacha/rarity-weights", headers={"X-API-Key": "admin-secret"})
        metrics = await client.get("/api/v1/observability/gacha")

    assert denied.status_code == 401
    assert allowed.status_code == 200
    assert metrics.status_code == 401
