"""Tests for API endpoints."""

from decimal import Decimal

import pytest
from httpx import AsyncClient

from conftest import FakeScraperFactory, offer_card
from smartamenyn.config import Settings, get_settings
from smartamenyn.main import app


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["supportedChains"] == ["ica", "hemkop", "coop", "lidl"]
    assert "timestamp" in data


# --- Chains ---

@pytest.mark.asyncio
async def test_list_chains(client: AsyncClient):
    resp = await client.get("/chains")
    assert resp.status_code == 200
    chains = resp.json()["chains"]
    assert [c["id"] for c in chains] == ["ica", "hemkop", "coop", "lidl"]
    assert chains[1]["name"] == "Hemköp"
    assert chains[0]["baseUrl"] == "https://www.ica.se"


# --- Store search ---

@pytest.mark.asyncio
async def test_search_stores(client: AsyncClient, scraper_factory: FakeScraperFactory, sample_stores):
    scraper_factory.configure("ica", stores=sample_stores[:1])
    resp = await client.get("/chains/ica/stores", params={"q": "maxi"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["query"] == "maxi"
    assert data["totalCount"] == 1
    assert data["stores"][0]["externalId"] == "1004096"
    assert scraper_factory.created[0].closed is True


@pytest.mark.asyncio
async def test_search_stores_without_query(client: AsyncClient, scraper_factory, sample_stores):
    scraper_factory.configure("ica", stores=sample_stores[:1])
    resp = await client.get("/chains/ica/stores")
    assert resp.status_code == 200
    assert resp.json()["query"] == ""


@pytest.mark.asyncio
async def test_search_stores_unknown_chain(client: AsyncClient):
    resp = await client.get("/chains/willys/stores", params={"q": "x"})
    assert resp.status_code == 400
    assert "willys" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_search_stores_failure(client: AsyncClient, scraper_factory: FakeScraperFactory):
    scraper_factory.configure("hemkop", error="Timeout 30000ms exceeded")
    resp = await client.get("/chains/hemkop/stores", params={"q": "odenplan"})
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Timeout 30000ms exceeded"
    assert scraper_factory.created[0].closed is True


# --- Offers ---

STORE_BODY = {
    "id": "ica-1004096",
    "name": "ICA Maxi Stormarknad Lindhagen",
    "chain": "ica",
    "externalId": "1004096",
}


@pytest.mark.asyncio
async def test_get_offers(client: AsyncClient, scraper_factory: FakeScraperFactory):
    scraper_factory.configure(
        "ica", cards=[offer_card("Gul lök", "2 för 25 kr"), offer_card("Mjölk 3%", "15,90 kr")]
    )
    resp = await client.post("/chains/ica/offers", json=STORE_BODY)
    assert resp.status_code == 200
    data = resp.json()
    assert data["store"]["externalId"] == "1004096"
    assert len(data["offers"]) == 2
    onion = data["offers"][0]
    assert Decimal(str(onion["offerPrice"])) == Decimal("25")
    assert onion["quantity"] == 2
    assert onion["storeId"] == "ica-1004096"
    assert onion["requiresMembership"] is False


@pytest.mark.asyncio
async def test_get_offers_requires_store_body(client: AsyncClient):
    body = {k: v for k, v in STORE_BODY.items() if k != "externalId"}
    resp = await client.post("/chains/ica/offers", json=body)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_offers_chain_mismatch(client: AsyncClient):
    resp = await client.post("/chains/coop/offers", json=STORE_BODY)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_get_offers_failure(client: AsyncClient, scraper_factory: FakeScraperFactory):
    scraper_factory.configure("ica", error="net::ERR_CONNECTION_RESET")
    resp = await client.post("/chains/ica/offers", json=STORE_BODY)
    assert resp.status_code == 500
    assert "ERR_CONNECTION_RESET" in resp.json()["detail"]


# --- Validation ---

@pytest.mark.asyncio
async def test_validate_all(client: AsyncClient):
    resp = await client.get("/validate")
    assert resp.status_code == 200
    data = resp.json()
    assert data["valid"] is True
    assert [r["chain"] for r in data["results"]] == ["ica", "hemkop", "coop", "lidl"]


@pytest.mark.asyncio
async def test_validate_all_reports_failure(client: AsyncClient, scraper_factory: FakeScraperFactory):
    scraper_factory.configure("lidl", valid=False)
    resp = await client.get("/validate")
    assert resp.status_code == 500
    data = resp.json()
    assert data["valid"] is False
    assert data["results"][3]["valid"] is False


@pytest.mark.asyncio
async def test_validate_chain(client: AsyncClient, scraper_factory: FakeScraperFactory):
    resp = await client.get("/validate/coop")
    assert resp.status_code == 200
    assert resp.json()["chain"] == "coop"

    scraper_factory.configure("coop", valid=False)
    resp = await client.get("/validate/coop")
    assert resp.status_code == 500
    assert resp.json()["valid"] is False

    resp = await client.get("/validate/willys")
    assert resp.status_code == 400


# --- Sync ---

@pytest.mark.asyncio
async def test_sync_requires_api_key(client: AsyncClient):
    resp = await client.post("/sync")
    assert resp.status_code == 401
    resp = await client.post("/sync", headers={"X-API-Key": "wrong"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_sync_disabled_without_key(client: AsyncClient):
    app.dependency_overrides[get_settings] = lambda: Settings(sync_api_key="")
    resp = await client.post("/sync", headers={"X-API-Key": "anything"})
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_sync(client: AsyncClient, scraper_factory: FakeScraperFactory, saved_stores):
    scraper_factory.configure("ica", cards=[offer_card("Gul lök", "2 för 25 kr")])
    scraper_factory.configure("coop", error="Coop is down")
    headers = {"X-API-Key": get_settings().sync_api_key}

    resp = await client.post("/sync", headers=headers)
    assert resp.status_code == 200
    report = resp.json()
    assert report["synced"] == 1
    assert report["failed"] == 1
    assert report["totalOffers"] == 1
    assert {r["storeId"] for r in report["results"]} == {"ica-1004096", "coop-coop-kungsholmen"}

    resp = await client.post(
        "/sync", headers=headers, json={"storeIds": ["ica-1004096"], "force": True}
    )
    assert resp.status_code == 200
    assert resp.json()["synced"] == 1
    assert resp.json()["skipped"] == 0
