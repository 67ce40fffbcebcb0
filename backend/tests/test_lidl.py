"""Tests for Lidl grid data, tile text and store entries."""

from decimal import Decimal

from smartamenyn.scrapers.lidl import (
    NATIONAL_STORE,
    LidlScraper,
    grid_payloads_from_html,
    offer_from_grid_data,
    offer_from_tile,
    stores_from_entries,
)


class TestGridData:
    def test_multi_buy_discount_text(self):
        raw = offer_from_grid_data(
            {
                "fullTitle": "Kycklingfilé",
                "category": "Färskt kött",
                "price": {
                    "price": 89.9,
                    "oldPrice": 119.0,
                    "discount": {"discountText": "2 FÖR 89,90"},
                    "basePrice": {"text": "kg"},
                },
                "image": "https://www.lidl.se/assets/gcp/kyckling.jpg",
                "canonicalUrl": "https://www.lidl.se/p/kycklingfile/p100",
            }
        )
        price = raw["price_info"]
        assert price.offer_price == Decimal("89.90")
        assert price.quantity == 2
        assert price.quantity_price == Decimal("44.95")
        assert price.original_price == Decimal("119.0")
        assert raw["unit"] == "kg"
        assert raw["savings"] == "2 FÖR 89,90"

        offer = LidlScraper()._build_offer(NATIONAL_STORE, raw)
        assert offer.store_id == "lidl-national"
        assert offer.category == "kott-chark"
        assert offer.original_price == Decimal("119.00")
        assert offer.image_url == "https://www.lidl.se/assets/gcp/kyckling.jpg"
        assert offer.offer_url == "https://www.lidl.se/p/kycklingfile/p100"

    def test_quantity_only_discount_text(self):
        raw = offer_from_grid_data(
            {"title": "Yoghurt", "price": {"price": "30", "discount": {"discountText": "3 FÖR"}}}
        )
        assert raw["price_info"].offer_price == Decimal("30")
        assert raw["price_info"].quantity == 3
        assert raw["price_info"].quantity_price == Decimal("10.00")

    def test_lidl_plus_price(self):
        raw = offer_from_grid_data(
            {
                "keyfacts": {"title": "Bananer"},
                "price": {"price": "19,90"},
                "lidlPlus": [{"price": {"price": 14.9}}],
                "image_V1": {"image": "https://assets.schwarz/banan.jpg"},
            }
        )
        assert raw["membership"] is True
        assert raw["price_info"].offer_price == Decimal("14.9")
        assert raw["price_info"].original_price == Decimal("19.90")
        assert raw["images"] == ["https://assets.schwarz/banan.jpg"]

    def test_missing_fields(self):
        assert offer_from_grid_data({"title": "Utan pris", "price": {}}) is None
        assert offer_from_grid_data({"price": {"price": 10}}) is None
        assert offer_from_grid_data({"title": "Fel", "price": {"price": 0.5}}) is None


class TestTileFallback:
    def test_separate_quantity_line(self):
        raw = offer_from_tile({"fields": {}, "lines": ["Gurka", "2 FÖR", "25,00"], "text": ""})
        assert raw["name"] == "Gurka"
        assert raw["price_info"].quantity == 2
        assert raw["price_info"].quantity_price == Decimal("12.50")

    def test_no_price(self):
        assert offer_from_tile({"fields": {"name": "Gurka"}, "lines": ["Gurka"]}) is None


class TestStoreEntries:
    def test_matching_store(self):
        entries = [
            {"name": "Lidl Malmö Triangeln", "address": "Södra Förstadsgatan 41"},
            {"name": "Lidl Lund", "address": None},
        ]
        stores = stores_from_entries(entries, "malmö")
        assert [s.name for s in stores] == ["Lidl Malmö Triangeln"]
        assert stores[0].id.startswith("lidl-lidl-malm")

    def test_national_placeholder(self):
        assert stores_from_entries([], "kiruna") == [NATIONAL_STORE]
        assert stores_from_entries([{"name": "Lidl Lund"}], "kiruna") == [NATIONAL_STORE]


def test_grid_payloads_from_html():
    html = """
    <div class="product-grid-box" data-grid-data='{"title": "Gurka", "price": {"price": 12.9}}'></div>
    <div class="product-grid-box" data-grid-data="{&quot;title&quot;: &quot;Tomat&quot;}"></div>
    <div class="product-grid-box" data-grid-data="not json"></div>
    <div class="product-grid-box"></div>
    """
    payloads = grid_payloads_from_html(html)
    assert [p["title"] for p in payloads] == ["Gurka", "Tomat"]
    assert payloads[0]["price"]["price"] == 12.9
