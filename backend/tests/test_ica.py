"""Tests for the ICA scraper: store search paths and offers pages."""

import httpx
import pytest

from smartamenyn.scrapers.ica import (
    NATIONAL_OFFERS_URL,
    OFFER_CARD_SELECTOR,
    IcaScraper,
    IcaSearchSession,
    store_from_api_card,
    stores_from_dom_entries,
)

API_CARD = {
    "accountNumber": "1004096",
    "storeName": "ICA Maxi Stormarknad Lindhagen",
    "profile": "Maxi",
    "address": {"street": "Lindhagensgatan 118", "postalCode": "112 51", "city": "Stockholm"},
    "highlightUrls": {"offers": {"url": "/erbjudanden/maxi-ica-stormarknad-lindhagen-1004096/"}},
}

DOM_ENTRIES = [
    {
        "name": "ICA Maxi Stormarknad Lindhagen",
        "address": "Lindhagensgatan 118",
        "href": "/butiker/maxi/stockholm/maxi-ica-stormarknad-lindhagen-1004096/",
    },
    {
        "name": "ICA Maxi Stormarknad Barkarby",
        "address": "Enköpingsvägen 1",
        "href": "/butiker/maxi/jarfalla/maxi-ica-stormarknad-barkarby-1004247/",
    },
    {
        "name": "Maxi ICA Stormarknad Häggvik",
        "address": "Häggviksvägen 4",
        "href": "/butiker/maxi/sollentuna/maxi-ica-stormarknad-haggvik-1003418/",
    },
    {
        "name": "ICA Supermarket Solna",
        "address": "Solna torg 1",
        "href": "/butiker/supermarket/solna/ica-supermarket-solna-1004333/",
    },
    {
        "name": "ICA Nära Birkastan",
        "address": "Rörstrandsgatan 3",
        "href": "/butiker/nara/stockholm/ica-nara-birkastan-1003857/",
    },
]


class TestStoreFromApiCard:
    def test_full_card(self):
        store = store_from_api_card(API_CARD)
        assert store.id == "ica-1004096"
        assert store.external_id == "1004096"
        assert store.address == "Lindhagensgatan 118, 112 51 Stockholm"
        assert store.city == "Stockholm"
        assert store.profile == "Maxi"
        assert store.offers_url == (
            "https://www.ica.se/erbjudanden/maxi-ica-stormarknad-lindhagen-1004096/"
        )

    def test_incomplete_card(self):
        assert store_from_api_card({"storeName": "ICA Utan Nummer"}) is None
        store = store_from_api_card({"accountNumber": 1234567, "storeName": "ICA Kvantum"})
        assert store.address is None
        assert store.offers_url is None


class TestStoresFromDomEntries:
    def test_ids_and_profiles(self):
        stores = stores_from_dom_entries(DOM_ENTRIES, "")
        assert len(stores) == 5
        assert stores[0].external_id == "1004096"
        assert stores[0].profile == "Maxi"
        assert stores[3].profile == "Supermarket"
        assert stores[0].offers_url.startswith("https://www.ica.se/butiker/maxi/")

    def test_query_filter(self):
        stores = stores_from_dom_entries(DOM_ENTRIES, "maxi")
        assert [s.external_id for s in stores] == ["1004096", "1004247", "1003418"]

    def test_duplicates_and_foreign_links(self):
        entries = [*DOM_ENTRIES[:1], DOM_ENTRIES[0], {"name": "Om ICA", "href": "/om-ica/"}]
        assert len(stores_from_dom_entries(entries, None)) == 1


class TestIcaStoreSearch:
    @pytest.mark.asyncio
    async def test_dom_fallback_filters_by_query(self, monkeypatch):
        scraper = IcaScraper()

        async def no_session(query):
            return None

        async def store_cards(query):
            return DOM_ENTRIES

        monkeypatch.setattr(scraper, "_capture_search_session", no_session)
        monkeypatch.setattr(scraper, "_scrape_store_cards", store_cards)

        result = await scraper.search_stores("Maxi")
        assert result.success is True
        assert len(result.data.stores) == 3
        assert result.data.total_count == 3
        assert all(s.profile == "Maxi" for s in result.data.stores)

    @pytest.mark.asyncio
    async def test_api_pagination_uses_captured_token(self, monkeypatch):
        scraper = IcaScraper()
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            skip = int(request.url.params["skip"])
            card = {**API_CARD, "accountNumber": str(2000000 + skip), "storeName": f"ICA {skip}"}
            return httpx.Response(200, json={"storeCards": [card]})

        async def session(query):
            return IcaSearchSession(
                auth_token="Bearer captured",
                url_param="stockholm",
                first_page={"storeCards": [API_CARD], "totalNrOfStores": 45},
            )

        monkeypatch.setattr(scraper, "_capture_search_session", session)
        scraper._http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        async with scraper:
            result = await scraper.search_stores("stockholm")

        assert result.success is True
        assert result.data.total_count == 45
        assert [s.external_id for s in result.data.stores] == ["1004096", "2000020", "2000040"]
        assert [r.url.params["skip"] for r in seen] == ["20", "40"]
        assert all(r.headers["authorization"] == "Bearer captured" for r in seen)
        assert all(r.url.params["url"] == "stockholm" for r in seen)

    @pytest.mark.asyncio
    async def test_failed_page_is_skipped(self, monkeypatch):
        scraper = IcaScraper()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502)

        async def session(query):
            return IcaSearchSession("Bearer t", "x", {"storeCards": [API_CARD], "totalNrOfStores": 30})

        monkeypatch.setattr(scraper, "_capture_search_session", session)
        scraper._http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        result = await scraper.search_stores("x")
        await scraper.close()
        assert result.success is True
        assert len(result.data.stores) == 1


class TestIcaOffersPage:
    @pytest.mark.asyncio
    async def test_scroll_stops_at_card_target(self, monkeypatch):
        scraper = IcaScraper()
        store = store_from_api_card(API_CARD)
        scrolls = []

        async def noop(*args, **kwargs):
            return True

        async def scroll(page, selector=None, target_count=0, load_more_selectors=()):
            scrolls.append((selector, target_count))
            return target_count

        async def extract(page, store):
            return []

        monkeypatch.setattr(scraper, "_goto", noop)
        monkeypatch.setattr(scraper, "_accept_cookies", noop)
        monkeypatch.setattr(scraper, "_click_first", noop)
        monkeypatch.setattr(scraper, "_scroll_until_loaded", scroll)
        monkeypatch.setattr(scraper, "_extract_offers", extract)

        await scraper._offers_from_url(None, store, NATIONAL_OFFERS_URL, in_store=True)
        assert scrolls == [(OFFER_CARD_SELECTOR, scraper.settings.scraping_max_cards)]
