"""Tests for Hemköp store entries, product card text and the offers page."""

from decimal import Decimal

import pytest

from smartamenyn.scrapers.hemkop import (
    MIN_PRODUCT_CONTAINERS,
    PRODUCT_CONTAINER_SELECTOR,
    TAB_SELECTOR,
    HemkopScraper,
    parse_card_text,
    stores_from_entries,
)


class TestStoresFromEntries:
    def test_cards_win_over_links(self):
        entries = [
            {"name": "Hemköp Odenplan", "address": "Odengatan 65", "href": "/erbjudanden/4147", "fromLink": False},
            {"name": "Hemköp Fältöversten", "address": None, "href": None, "dataId": "4521", "fromLink": False},
            {"name": "Veckans erbjudanden", "href": "/erbjudanden/9999", "fromLink": True},
        ]
        stores = stores_from_entries(entries)
        assert [s.external_id for s in stores] == ["4147", "4521"]
        assert stores[0].id == "hemkop-4147"
        assert stores[0].address == "Odengatan 65"
        assert stores[1].offers_url == "https://www.hemkop.se/erbjudanden/4521"

    def test_link_fallback(self):
        entries = [
            {"name": None, "href": None, "fromLink": False},
            {"name": "", "href": "/erbjudanden/4147", "fromLink": True},
            {"name": "Hemköp Täby", "href": "/butik?storeId=4810", "fromLink": True},
        ]
        stores = stores_from_entries(entries)
        assert [s.external_id for s in stores] == ["4147", "4810"]
        assert stores[0].name == "Hemköp 4147"


class TestParseCardText:
    def test_unit_price_card(self):
        raw = parse_card_text("5,00/st5,00/stMunkarDafgårds, 63gLägsta pris 30 dagar")
        assert raw["price_info"].offer_price == Decimal("5.00")
        assert raw["price_info"].unit == "st"
        assert raw["name"].startswith("Munkar")

    def test_multi_buy_card(self):
        raw = parse_card_text("Klubbpris2 för 79 krKaffe Zoégas 450gJmf pris 87,78 kr/kg")
        price = raw["price_info"]
        assert price.offer_price == Decimal("79")
        assert price.quantity == 2
        assert price.quantity_price == Decimal("39.50")
        assert raw["name"] == "Kaffe Zoégas"

    def test_pick_and_mix(self):
        raw = parse_card_text("Välj och blanda Yoghurt Arla 1000g 2 för 40 kr")
        assert raw["name"] == "Välj och blanda: Yoghurt Arla"
        assert raw["price_info"].quantity_price == Decimal("20.00")

    def test_heading_fallback(self):
        raw = parse_card_text("Klubbpris 24,90 kr", heading="Klubbpris Bregott 600g")
        assert raw["name"] == "Bregott 600g"
        assert raw["price_info"].offer_price == Decimal("24.90")

    def test_unusable_text(self):
        assert parse_card_text("") is None
        assert parse_card_text("Se alla") is None
        assert parse_card_text("Veckans bästa erbjudanden") is None

    def test_offer_from_parsed_card(self):
        scraper = HemkopScraper()
        store = stores_from_entries(
            [{"name": "Hemköp Odenplan", "href": "/erbjudanden/4147", "fromLink": False}]
        )[0]
        raw = parse_card_text("Klubbpris2 för 79 krKaffe Zoégas 450gJmf pris 87,78 kr/kg")
        offer = scraper._build_offer(store, raw)
        assert offer.requires_membership is True
        assert offer.quantity == 2
        assert offer.category == "dryck"
        assert offer.id.startswith("hemkop-4147-")


class TabPage:
    """Offers page whose product grid only renders behind some tabs."""

    def __init__(self, containers_per_tab: list[int | None], initial: int = 0) -> None:
        self.containers_per_tab = containers_per_tab
        self.shown = initial
        self.clicked: list[int] = []
        self.closed = False

    def locator(self, selector: str):
        page = self
        if selector == TAB_SELECTOR:
            return _Tabs(page)

        class _Containers:
            async def count(self) -> int:
                return page.shown

        return _Containers()

    async def wait_for_timeout(self, ms: int) -> None:
        return None

    async def close(self) -> None:
        self.closed = True


class _Tabs:
    def __init__(self, page: TabPage) -> None:
        self.page = page

    async def count(self) -> int:
        return len(self.page.containers_per_tab)

    def nth(self, index: int):
        page = self.page

        class _Tab:
            async def click(self) -> None:
                shown = page.containers_per_tab[index]
                if shown is None:
                    raise RuntimeError("Element is outside of the viewport")
                page.clicked.append(index)
                page.shown = shown

        return _Tab()


class TestProductTabs:
    @pytest.mark.asyncio
    async def test_stops_at_first_tab_with_products(self):
        page = TabPage([0, None, MIN_PRODUCT_CONTAINERS + 2, 40])
        assert await HemkopScraper()._open_product_tab(page) is True
        assert page.clicked == [0, 2]

    @pytest.mark.asyncio
    async def test_grid_already_visible(self):
        page = TabPage([0, 40], initial=MIN_PRODUCT_CONTAINERS)
        assert await HemkopScraper()._open_product_tab(page) is True
        assert page.clicked == []

    @pytest.mark.asyncio
    async def test_no_tab_shows_products(self):
        page = TabPage([0, 1, None])
        assert await HemkopScraper()._open_product_tab(page) is False
        assert page.clicked == [0, 1]

    @pytest.mark.asyncio
    async def test_offers_scroll_until_card_target(self, monkeypatch):
        scraper = HemkopScraper()
        page = TabPage([])
        store = stores_from_entries(
            [{"name": "Hemköp Odenplan", "href": "/erbjudanden/4147", "fromLink": False}]
        )[0]
        scrolls = []

        async def new_page():
            return page

        async def noop(*args, **kwargs):
            return True

        async def scroll(page, selector=None, target_count=0, load_more_selectors=()):
            scrolls.append((selector, target_count))
            return target_count

        async def extract(page, store):
            return []

        monkeypatch.setattr(scraper, "_new_page", new_page)
        monkeypatch.setattr(scraper, "_goto", noop)
        monkeypatch.setattr(scraper, "_accept_cookies", noop)
        monkeypatch.setattr(scraper, "_click_first", noop)
        monkeypatch.setattr(scraper, "_open_product_tab", noop)
        monkeypatch.setattr(scraper, "_scroll_until_loaded", scroll)
        monkeypatch.setattr(scraper, "_extract_offers", extract)

        result = await scraper.get_offers(store)
        assert result.success is True
        assert scrolls == [(PRODUCT_CONTAINER_SELECTOR, scraper.settings.scraping_max_cards)]
        assert page.closed is True
