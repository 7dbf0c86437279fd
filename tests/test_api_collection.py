"""Tests for collection API endpoints."""

from datetime import date

import pytest
from httpx import AsyncClient


@pytest.fixture
async def cards(add_set, add_card) -> dict[str, int]:
    new_set = await add_set("DMU", released_at=date(2022, 9, 9))
    old_set = await add_set("DOM", released_at=date(2018, 4, 27))
    return {
        "elves": await add_card(
            new_set, "Llanowar Elves", collector_number="168", color_identity=["G"]
        ),
        "old_elves": await add_card(
            old_set, "Llanowar Elves", scryfall_id="sf-dom-elves", collector_number="168"
        ),
        "dragon": await add_card(
            old_set, "Shivan Dragon", collector_number="150", rarity="rare", color_identity=["R"]
        ),
    }


class TestUpdateCollection:
    async def test_put_creates_collection(self, client: AsyncClient, cards) -> None:
        response = await client.put(
            "/collection/user-123",
            json={"cards": {str(cards["elves"]): 4, str(cards["dragon"]): 1}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == "user-123"
        assert data["cards"] == {str(cards["elves"]): 4, str(cards["dragon"]): 1}
        assert data["total_cards"] == 5
        assert data["unique_cards"] == 2

    async def test_put_replaces_collection(self, client: AsyncClient, cards) -> None:
        await client.put("/collection/user-123", json={"cards": {str(cards["elves"]): 4}})

        response = await client.put(
            "/collection/user-123", json={"cards": {str(cards["dragon"]): 2}}
        )

        assert response.json()["cards"] == {str(cards["dragon"]): 2}

    async def test_put_rejects_non_positive_quantity(self, client: AsyncClient, cards) -> None:
        response = await client.put(
            "/collection/user-123", json={"cards": {str(cards["elves"]): 0}}
        )

        assert response.status_code == 400

    async def test_put_rejects_unknown_card(self, client: AsyncClient, cards) -> None:
        response = await client.put("/collection/user-123", json={"cards": {"999": 1}})

        assert response.status_code == 400
        assert "Unknown card ids" in response.json()["detail"]


class TestSearchCollection:
    async def test_search_owned_cards(self, client: AsyncClient, cards) -> None:
        await client.put(
            "/collection/user-123",
            json={"cards": {str(cards["elves"]): 4, str(cards["dragon"]): 1}},
        )

        response = await client.get("/collection/user-123/cards", params={"q": "llanowar"})

        assert response.status_code == 200
        data = response.json()
        assert data["query"] == "llanowar"
        assert data["total"] == 1
        owned = data["cards"][0]
        assert owned["quantity"] == 4
        assert owned["card"]["id"] == cards["elves"]
        assert owned["card"]["set"]["code"] == "DMU"

    async def test_list_without_query(self, client: AsyncClient, cards) -> None:
        await client.put(
            "/collection/user-123",
            json={"cards": {str(cards["dragon"]): 1, str(cards["elves"]): 4}},
        )

        response = await client.get("/collection/user-123/cards")

        ids = [owned["card"]["id"] for owned in response.json()["cards"]]
        assert ids == [cards["elves"], cards["dragon"]]

    async def test_filters(self, client: AsyncClient, cards) -> None:
        await client.put(
            "/collection/user-123",
            json={"cards": {str(cards["dragon"]): 1, str(cards["elves"]): 4}},
        )

        response = await client.get("/collection/user-123/cards", params={"colors": "R"})

        assert [o["card"]["name"] for o in response.json()["cards"]] == ["Shivan Dragon"]

    async def test_unknown_user_is_empty(self, client: AsyncClient, cards) -> None:
        response = await client.get("/collection/nobody/cards", params={"q": "llanowar"})

        assert response.status_code == 200
        assert response.json()["total"] == 0
