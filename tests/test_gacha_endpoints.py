from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from gacha_api.models.gacha import RewardTier
from gacha_api.models.place import Coupon, Place
from gacha_api.services.configuration import ConfigurationService
from gacha_api.services.gacha.rarity import CONFIG_CATEGORY, RARITY_WEIGHTS_KEY

PLAYER = {"X-Session-User": "player-1"}


async def _seed(session_factory, *, places: int = 6) -> None:
    merchant_id = uuid4()
    async with session_factory() as session:
        session.add_all(
            [
                Place(
                    name=f"Landmark {index}",
                    city="Taipei",
                    district="Daan",
                    category="cultural",
                    rating=4.5,
                    latitude=25.0 + index * 0.01,
                    longitude=121.5,
                    merchant_id=merchant_id,
                )
                for index in range(places)
            ]
        )
        session.add(
            Coupon(
                merchant_id=merchant_id,
                title="Free entry",
                rarity=RewardTier.SR,
                remaining_quantity=3,
                valid_days=30,
            )
        )
        await ConfigurationService(session).set(CONFIG_CATEGORY, RARITY_WEIGHTS_KEY, {"SR": 100})
        await session.commit()


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_draw_requires_session_user(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.post("/api/v1/gacha/draws", json={"city": "Taipei"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_draw_returns_places_and_reward(app_with_db) -> None:
    app, session_factory = app_with_db
    await _seed(session_factory)

    async with _client(app) as client:
        response = await client.post(
            "/api/v1/gacha/draws",
            json={"city": "Taipei", "district": "Daan", "count": 4},
            headers=PLAYER,
        )
        assert response.status_code == 201
        body = response.json()
        assert len(body["places"]) == 4
        assert body["requestedCount"] == 4
        assert body["wonTier"] == "SR"
        assert body["rewardStored"] is True
        assert body["wonReward"]["title"] == "Free entry"
        assert body["published"] is True
        assert body["tripSequence"] == 1

        quota = await client.get("/api/v1/gacha/quota", headers=PLAYER)
        assert quota.status_code == 200
        assert quota.json()["used"] == 4

        inventory = await client.get("/api/v1/inventory", headers=PLAYER)
        assert inventory.status_code == 200
        payload = inventory.json()
        assert payload["unreadCount"] == 1
        assert payload["used"] == 1
        assert payload["items"][0]["tier"] == "SR"


@pytest.mark.asyncio
async def test_draw_count_is_validated(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.post("/api/v1/gacha/draws", json={"city": "Taipei", "count": 0}, headers=PLAYER)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_quota_exhaustion_maps_to_429(app_with_db, monkeypatch) -> None:
    from gacha_api.core.settings import settings

    monkeypatch.setattr(settings, "daily_draw_limit", 5)
    app, session_factory = app_with_db
    await _seed(session_factory)

    async with _client(app) as client:
        first = await client.post("/api/v1/gacha/draws", json={"city": "Taipei", "count": 4}, headers=PLAYER)
        assert first.status_code == 201
        second = await client.post("/api/v1/gacha/draws", json={"city": "Taipei", "count": 4}, headers=PLAYER)

    assert second.status_code == 429
    assert second.json()["detail"]["code"] == "QUOTA_EXCEEDED"


@pytest.mark.asyncio
async def test_place_feedback_excludes_after_threshold(app_with_db) -> None:
    app, _ = app_with_db
    body = {"placeName": "Noisy Bar", "city": "Taipei"}

    async with _client(app) as client:
        responses = [
            await client.post("/api/v1/gacha/places/feedback", json=body, headers=PLAYER) for _ in range(3)
        ]

    assert [response.json()["penaltyScore"] for response in responses] == [1, 2, 3]
    assert [response.json()["excluded"] for response in responses] == [False, False, True]


@pytest.mark.asyncio
async def test_inventory_item_lifecycle(app_with_db) -> None:
    app, session_factory = app_with_db
    await _seed(session_factory)

    async with _client(app) as client:
        draw = await client.post("/api/v1/gacha/draws", json={"city": "Taipei", "count": 3}, headers=PLAYER)
        item_id = draw.json()["wonReward"]["inventoryItemId"]

        foreign = await client.get(f"/api/v1/inventory/{item_id}", headers={"X-Session-User": "someone-else"})
        assert foreign.status_code == 404
        assert foreign.json()["detail"]["code"] == "ITEM_NOT_FOUND"

        opened = await client.get(f"/api/v1/inventory/{item_id}", headers=PLAYER)
        assert opened.status_code == 200
        assert opened.json()["isRead"] is True

        capacity = await client.get("/api/v1/inventory/capacity", headers=PLAYER)
        assert capacity.json()["used"] == 1
        assert capacity.json()["isFull"] is False

        expiring = await client.get("/api/v1/inventory/expiring", params={"days": 60}, headers=PLAYER)
        assert [item["id"] for item in expiring.json()] == [item_id]

        deleted = await client.delete(f"/api/v1/inventory/{item_id}", headers=PLAYER)
        assert deleted.status_code == 200
        assert deleted.json()["status"] == "deleted"

        missing = await client.get(f"/api/v1/inventory/{item_id}", headers=PLAYER)
        assert missing.status_code == 404


@pytest.mark.asyncio
async def test_redeem_and_confirm_flow(app_with_db) -> None:
    app, session_factory = app_with_db
    await _seed(session_factory)

    async with _client(app) as client:
        draw = await client.post("/api/v1/gacha/draws", json={"city": "Taipei", "count": 3}, headers=PLAYER)
        reward = draw.json()["wonReward"]
        item_id = reward["inventoryItemId"]

        code_response = await client.get(f"/api/v1/merchants/{reward['merchantId']}/daily-code")
        assert code_response.status_code == 200
        code = code_response.json()["code"]
        assert code_response.json()["expiresAt"] > code_response.json()["issuedAt"]

        verify = await client.post(
            "/api/v1/merchants/verify-code",
            json={"merchantId": reward["merchantId"], "code": code.lower()},
        )
        assert verify.json() == {"merchantId": reward["merchantId"], "isValid": True}

        wrong = await client.post(
            f"/api/v1/inventory/{item_id}/redeem",
            json={"code": "ZZZZZZZZ"},
            headers=PLAYER,
        )
        assert wrong.status_code == 400
        assert wrong.json()["detail"]["code"] == "INVALID_CODE"

        redeemed = await client.post(f"/api/v1/inventory/{item_id}/redeem", json={"code": code}, headers=PLAYER)
        assert redeemed.status_code == 200
        result = redeemed.json()
        assert result["success"] is True
        assert result["item"]["status"] == "verified"
        assert result["redemption"]["status"] == "verified"

        again = await client.post(f"/api/v1/inventory/{item_id}/redeem", json={"code": code}, headers=PLAYER)
        assert again.status_code == 409
        assert again.json()["detail"]["code"] == "ALREADY_REDEEMED"

        redemption_id = result["redemption"]["id"]
        confirmed = await client.post(f"/api/v1/inventory/redemptions/{redemption_id}/confirm", headers=PLAYER)
        assert confirmed.status_code == 200
        assert confirmed.json()["redemption"]["status"] == "confirmed"
        assert confirmed.json()["item"]["status"] == "redeemed"

        repeated = await client.post(f"/api/v1/inventory/redemptions/{redemption_id}/confirm", headers=PLAYER)
        assert repeated.status_code == 200


@pytest.mark.asyncio
async def test_verify_code_without_issued_code_returns_404(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.post(
            "/api/v1/merchants/verify-code",
            json={"merchantId": str(uuid4()), "code": "ABCDEF12"},
        )

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "NO_MERCHANT_CODE_SET"


@pytest.mark.asyncio
async def test_rotating_code_replaces_previous(app_with_db) -> None:
    app, _ = app_with_db
    merchant_id = str(uuid4())

    async with _client(app) as client:
        first = (await client.get(f"/api/v1/merchants/{merchant_id}/daily-code")).json()["code"]
        same = (await client.get(f"/api/v1/merchants/{merchant_id}/daily-code")).json()["code"]
        rotated = await client.post(f"/api/v1/merchants/{merchant_id}/daily-code/rotate")
        assert rotated.status_code == 200

        stale = await client.post("/api/v1/merchants/verify-code", json={"merchantId": merchant_id, "code": first})
        fresh = await client.post(
            "/api/v1/merchants/verify-code",
            json={"merchantId": merchant_id, "code": rotated.json()["code"]},
        )

    assert first == same
    assert fresh.json()["isValid"] is True
    if rotated.json()["code"] != first:
        assert stale.json()["isValid"] is False


@pytest.mark.asyncio
async def test_merchant_endpoints_require_key_when_configured(app_with_db, monkeypatch) -> None:
    from gacha_api.core.settings import settings

    monkeypatch.setattr(settings, "merchant_api_key", "merchant-secret")
    monkeypatch.setattr(settings, "admin_api_key", "admin-secret")
    app, _ = app_with_db
    url = f"/api/v1/merchants/{uuid4()}/daily-code"

    async with _client(app) as client:
        denied = await client.get(url)
        merchant = await client.get(url, headers={"X-API-Key": "merchant-secret"})
        admin = await client.get(url, headers={"X-API-Key": "admin-secret"})

    assert denied.status_code == 401
    assert merchant.status_code == 200
    assert admin.status_code == 200
