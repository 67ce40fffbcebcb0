"""Lidl scraper -- national weekly offers.

Strategy:
    1. Navigate to https://www.lidl.se and accept cookies.
    2. Collect the weekly offer category links from ``#week-panel-0``.
    3. Visit each category page (capped by ``lidl_max_category_pages``)
       and scroll until the product grid stops growing.
    4. Read product tiles from their ``data-grid-data`` JSON; fall back to
       tile text for tiles without it.

Lidl prices are the same in every store, so offers are attached to the
store passed in, typically the synthetic ``lidl-national`` store.
"""

from __future__ import annotations

import json
import logging
import re
from decimal import Decimal
from typing import Any

from bs4 import BeautifulSoup
from playwright.async_api import Page

from smartamenyn.scrapers.base import BaseScraper, dedupe_offers, filter_stores_by_query
from smartamenyn.scrapers.parsing import (
    PriceInfo,
    clean_text,
    is_plausible_price,
    parse_decimal,
    parse_multi_buy,
    parse_price_lines,
    per_unit,
)
from smartamenyn.scrapers.types import Offer, OffersResult, Store, StoreSearchResult

logger = logging.getLogger(__name__)

BASE_URL = "https://www.lidl.se"
STORE_FINDER_URL = f"{BASE_URL}/butiker"

NATIONAL_STORE = Store(
    id="lidl-national",
    name="Lidl Sverige",
    chain="lidl",
    external_id="national",
)

GRID_DATA_SELECTOR = "[data-grid-data]"
TILE_SELECTOR = ".product-grid-box, .AProductGridbox__GridTilePlaceholder, .odsc-tile"

_QUANTITY_RE = re.compile(r"(\d+)\s*FÖR", re.IGNORECASE)

_OFFER_LINKS_JS = """
() => {
  const panel = document.getElementById("week-panel-0");
  if (!panel) return [];
  return Array.from(panel.querySelectorAll("a[href*='/c/']"))
    .map((a) => a.href)
    .filter((href) => href.includes("/c/") && href.includes("/a"));
}
"""

_STORE_ENTRIES_JS = """
() => Array.from(document.querySelectorAll(
  "[data-testid*='store'], li[class*='location'], [class*='store-list'] li"
)).map((el) => {
  const text = (node) => (node ? (node.innerText || node.textContent || "").trim() : null);
  return {
    name: text(el.querySelector("h2, h3, [class*='name'], [class*='title']")),
    address: text(el.querySelector("[class*='address'], address")),
  };
})
"""


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def stores_from_entries(entries: list[dict[str, Any]], query: str | None) -> list[Store]:
    """Stores listed on the store finder, or the national store when none match."""
    stores: list[Store] = []
    seen: set[str] = set()
    for entry in entries:
        name = clean_text(entry.get("name"))
        slug = _slugify(name)
        if not slug or slug in seen:
            continue
        seen.add(slug)
        stores.append(
            Store(
                id=f"lidl-{slug}",
                name=name,
                address=clean_text(entry.get("address")) or None,
                chain="lidl",
                external_id=slug,
            )
        )
    stores = filter_stores_by_query(stores, query)
    return stores or [NATIONAL_STORE]


def _price_value(raw: Any) -> Decimal | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return Decimal(str(raw))
    return parse_decimal(str(raw))


def offer_from_grid_data(data: dict[str, Any]) -> dict[str, Any] | None:
    """Map one tile's ``data-grid-data`` JSON onto offer fields.

    ``price.price`` is the printed price. With a "2 FÖR 89,90" discount text
    that printed price is the total for the bundle, so the quantity comes
    from the discount text and the per-item price is derived. A lower Lidl
    Plus price becomes the offer price and marks the offer members-only.
    """
    keyfacts = data.get("keyfacts") or {}
    name = clean_text(data.get("fullTitle") or data.get("title") or keyfacts.get("title"))
    price_data = data.get("price") or {}
    offer_price = _price_value(price_data.get("price"))
    if not name or offer_price is None:
        return None

    original_price = _price_value(price_data.get("oldPrice"))
    discount_text = clean_text((price_data.get("discount") or {}).get("discountText"))

    quantity = None
    multi = parse_multi_buy(discount_text)
    if multi:
        quantity, offer_price = multi
    else:
        quantity_match = _QUANTITY_RE.search(discount_text)
        if quantity_match:
            quantity = int(quantity_match.group(1))

    membership = False
    lidl_plus = data.get("lidlPlus") or []
    if lidl_plus:
        plus_price = _price_value(((lidl_plus[0] or {}).get("price") or {}).get("price"))
        if plus_price is not None and plus_price < offer_price:
            original_price = offer_price
            offer_price = plus_price
            membership = True

    if not is_plausible_price(offer_price):
        return None

    multi_buy = quantity is not None and quantity > 1
    image = data.get("image") or (data.get("image_V1") or {}).get("image")
    brand = data.get("brand")
    return {
        "name": name,
        "brand": clean_text(brand.get("name")) or None if isinstance(brand, dict) else None,
        "price_info": PriceInfo(
            offer_price=offer_price,
            quantity=quantity if multi_buy else None,
            quantity_price=per_unit(offer_price, quantity) if multi_buy else None,
            original_price=original_price,
        ),
        "unit": clean_text((price_data.get("basePrice") or {}).get("text")) or None,
        "savings": discount_text or None,
        "images": [image] if image else [],
        "link": data.get("canonicalUrl") or data.get("canonicalPath"),
        "store_category": clean_text(data.get("category")) or None,
        "membership": membership,
        "text": discount_text,
    }


def grid_payloads_from_html(html: str) -> list[dict[str, Any]]:
    """Decode every ``data-grid-data`` attribute on a rendered category page."""
    soup = BeautifulSoup(html, "html.parser")
    payloads = []
    for index, tag in enumerate(soup.select(GRID_DATA_SELECTOR)):
        try:
            payloads.append(json.loads(tag["data-grid-data"]))
        except ValueError:
            logger.debug("Lidl: tile %d has malformed grid data", index)
    return payloads


def offer_from_tile(card: dict[str, Any]) -> dict[str, Any] | None:
    """Text fallback for tiles without grid JSON."""
    name = clean_text((card.get("fields") or {}).get("name"))
    lines = card.get("lines") or []
    if not name and lines:
        name = lines[0]
    price = parse_price_lines(lines)
    if not name or price is None:
        return None
    return {
        "name": name,
        "price_info": price,
        "images": card.get("images") or [],
        "link": card.get("link"),
        "text": card.get("text") or "",
    }


class LidlScraper(BaseScraper):
    """Scraper for Lidl Sverige weekly offers."""

    chain_id = "lidl"
    chain_name = "Lidl"
    base_url = BASE_URL

    validation_url = BASE_URL
    validation_markers = ("main, [class*='content']",)

    cookie_selectors = (
        "#onetrust-accept-btn-handler",
        "button:has-text('Acceptera')",
        "button:has-text('Godkänn')",
        "button[id*='accept']",
    )
    image_domains = ("assets.schwarz", "lidl.se")
    min_structured_results = 1

    async def _search_stores(self, query: str) -> StoreSearchResult:
        page = await self._new_page()
        try:
            await self._goto(page, STORE_FINDER_URL)
            await self._accept_cookies(page)
            await self._fill_search(page, query)
            entries = await page.evaluate(_STORE_ENTRIES_JS)
        finally:
            await page.close()

        stores = stores_from_entries(entries, query)
        return StoreSearchResult(stores=stores, query=query, total_count=len(stores))

    async def _get_offers(self, store: Store) -> OffersResult:
        page = await self._new_page()
        try:
            await self._goto(page, BASE_URL)
            await self._accept_cookies(page)
            category_urls = await page.evaluate(_OFFER_LINKS_JS)
            category_urls = list(dict.fromkeys(category_urls))
            logger.info("Lidl: %d weekly offer categories", len(category_urls))

            offers: list[Offer] = []
            for url in category_urls[: self.settings.lidl_max_category_pages]:
                await self._goto(page, url)
                await self._scroll_until_loaded(page)
                category_offers = await self._extract_offers(page, store)
                logger.info("Lidl: %d offers in %s", len(category_offers), url)
                offers.extend(category_offers)
        finally:
            await page.close()

        offers = dedupe_offers(offers)
        logger.info("Lidl: %d unique offers", len(offers))
        return OffersResult(offers=offers, store=store)

    async def _extract_structured(self, page: Page, store: Store) -> list[Offer]:
        payloads = grid_payloads_from_html(await page.content())
        offers: list[Offer] = []
        for index, payload in enumerate(payloads):
            try:
                raw = offer_from_grid_data(payload)
                offer = self._build_offer(store, raw) if raw else None
            except Exception:
                logger.debug("Lidl: failed to parse grid data %d", index, exc_info=True)
                continue
            if offer is not None:
                offers.append(offer)
        return dedupe_offers(offers)

    async def _extract_generic(self, page: Page, store: Store) -> list[Offer]:
        cards = await self._collect_cards(
            page,
            TILE_SELECTOR,
            {"name": ".odsc-tile__link, [class*='name'], [class*='title'], h2, h3, h4"},
        )
        offers: list[Offer] = []
        for index, card in enumerate(cards):
            try:
                raw = offer_from_tile(card)
                offer = self._build_offer(store, raw) if raw else None
            except Exception:
                logger.debug("Lidl: failed to parse tile %d", index, exc_info=True)
                continue
            if offer is not None:
                offers.append(offer)
        return offers
