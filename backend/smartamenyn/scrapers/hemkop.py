"""Hemköp scraper -- store finder and per-store offer pages.

Store-specific offers live on https://www.hemkop.se/erbjudanden/{store-id}.
The product grid sits behind one of several tabs whose position changes,
so each tab is clicked until product containers show up.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from playwright.async_api import Page

from smartamenyn.scrapers.base import BaseScraper, filter_stores_by_query
from smartamenyn.scrapers.parsing import (
    PriceInfo,
    clean_text,
    is_plausible_price,
    parse_decimal,
    parse_multi_buy,
    parse_price_info,
    per_unit,
)
from smartamenyn.scrapers.types import Offer, OffersResult, Store, StoreSearchResult

logger = logging.getLogger(__name__)

BASE_URL = "https://www.hemkop.se"
STORE_FINDER_URL = f"{BASE_URL}/hitta-butik"
# Store used by validate(); its offers page has existed for years.
VALIDATION_STORE_ID = "4147"

PRODUCT_CONTAINER_SELECTOR = (
    "[data-testid*='product'], [class*='ProductCard'], [class*='product-card']"
)
MIN_PRODUCT_CONTAINERS = 4

PRODUCT_GRID_SELECTORS = (
    "[data-testid*='product']",
    "[class*='ProductCard']",
    "[class*='product-card']",
    "[class*='offer-card']",
    "[class*='campaign']",
    "article",
    "[class*='Product_']",
    "[class*='Offer_']",
)
SHOW_ALL_SELECTORS = (
    "button:has-text('Se alla')",
    "a:has-text('Se alla')",
    "[class*='show-all']",
    "[class*='view-all']",
)
LOAD_MORE_SELECTORS = (
    "button:has-text('Visa fler')",
    "button:has-text('Ladda fler')",
)
TAB_SELECTOR = "[role='tab']"

_UNIT_PRICE_RE = re.compile(r"(\d+)[,.](\d{2})\s*/\s*(st|kg|l|förp)", re.IGNORECASE)
_VALJ_OCH_BLANDA_RE = re.compile(
    r"Välj och blanda\s*([A-ZÅÄÖ][a-zåäö]+[^0-9]*?)(?:\d|Jmf|Gäller)", re.IGNORECASE
)
_NAME_AFTER_PRICE_RE = re.compile(
    r"(?:\d+[,.]?\d*\s*/\s*(?:st|kg|l|förp)){1,2}(.+?)(?:Lägsta|Erbjudandets|Jmf|\d+\s*dgr|$)",
    re.IGNORECASE,
)
_NAME_AFTER_MULTI_RE = re.compile(
    r"\d+\s*för\s*\d+(?:[,.]\d+)?\s*kr\s*([A-ZÅÄÖ][^0-9]+?)(?:\d|Jmf|Gäller|$)",
    re.IGNORECASE,
)
_STORE_ID_RES = (re.compile(r"/erbjudanden/(\d+)"), re.compile(r"storeId[=:](\d+)"))

_STORE_ENTRIES_JS = """
() => {
  const text = (node) => (node ? (node.innerText || node.textContent || "").trim() : null);
  const cards = Array.from(document.querySelectorAll(
    "[class*='store-card'], [class*='store-item'], .store-result, li[class*='store']"
  )).map((el) => {
    const link = el.querySelector("a[href*='/erbjudanden/'], a[href*='storeId']");
    return {
      name: text(el.querySelector("h2, h3, [class*='name'], [class*='title'], strong")),
      address: text(el.querySelector("[class*='address'], address, p")),
      href: link ? link.getAttribute("href") : null,
      dataId: el.getAttribute("data-store-id") || el.getAttribute("data-id"),
      fromLink: false,
    };
  });
  const links = Array.from(document.querySelectorAll("a[href*='/erbjudanden/']")).map((a) => ({
    name: text(a),
    address: null,
    href: a.getAttribute("href"),
    dataId: null,
    fromLink: true,
  }));
  return cards.concat(links);
}
"""


def _external_id(entry: dict[str, Any]) -> str | None:
    href = entry.get("href") or ""
    for pattern in _STORE_ID_RES:
        match = pattern.search(href)
        if match:
            return match.group(1)
    data_id = entry.get("dataId")
    return str(data_id) if data_id else None


def stores_from_entries(entries: list[dict[str, Any]]) -> list[Store]:
    """Build stores from store-finder entries.

    Card entries are used when any of them resolves to a store id; bare
    offer-page links are the fallback.
    """
    cards = [e for e in entries if not e.get("fromLink")]
    links = [e for e in entries if e.get("fromLink")]

    stores: list[Store] = []
    for group in (cards, links):
        seen: set[str] = set()
        for entry in group:
            external_id = _external_id(entry)
            if not external_id or external_id in seen:
                continue
            name = clean_text(entry.get("name"))
            if not name and not entry.get("fromLink"):
                continue
            seen.add(external_id)
            stores.append(
                Store(
                    id=f"hemkop-{external_id}",
                    name=name or f"Hemköp {external_id}",
                    address=clean_text(entry.get("address")) or None,
                    chain="hemkop",
                    external_id=external_id,
                    offers_url=f"{BASE_URL}/erbjudanden/{external_id}",
                )
            )
        if stores:
            break
    return stores


def _clean_name(name: str) -> str:
    name = re.sub(r"^Klubbpris", "", name, flags=re.IGNORECASE).strip()
    name = re.sub(r"Ordinarie pris.*$", "", name, flags=re.IGNORECASE).strip()
    name = re.sub(r"Ord\.? pris.*$", "", name, flags=re.IGNORECASE).strip()
    return name.strip(" ,.-")


def parse_card_text(text: str, heading: str | None = None) -> dict[str, Any] | None:
    """Parse a Hemköp product card whose text runs together.

    Cards render as e.g. ``"5,00/st5,00/stMunkarDafgårds, 63gLägsta pris..."``
    or ``"Klubbpris2 för 79 krKaffe Zoégas 450gJmf pris..."``; the name is cut
    out of the text around the price, with the card heading as fallback.
    """
    text = text or ""
    if len(text.strip()) < 10:
        return None

    price: PriceInfo | None = None
    multi = parse_multi_buy(text)
    unit_match = _UNIT_PRICE_RE.search(text)
    if multi and multi[0] > 1 and is_plausible_price(multi[1]):
        quantity, total = multi
        price = PriceInfo(
            offer_price=total,
            quantity=quantity,
            quantity_price=per_unit(total, quantity),
        )
    elif unit_match:
        price = PriceInfo(
            offer_price=parse_decimal(unit_match.group(0)),
            unit=unit_match.group(3).lower(),
        )
    else:
        price = parse_price_info(text)
    if price is None or not is_plausible_price(price.offer_price):
        return None

    name = None
    match = _VALJ_OCH_BLANDA_RE.search(text)
    if match:
        name = f"Välj och blanda: {clean_text(match.group(1))}"
    for pattern in (_NAME_AFTER_PRICE_RE, _NAME_AFTER_MULTI_RE):
        if name and len(name) >= 2:
            break
        match = pattern.search(text)
        if match:
            name = _clean_name(clean_text(match.group(1)))
    if not name or len(name) < 2:
        name = _clean_name(clean_text(heading))
    if not name or len(name) < 2:
        return None

    return {"name": name, "price_info": price, "text": text}


class HemkopScraper(BaseScraper):
    """Scraper for Hemköp store offers."""

    chain_id = "hemkop"
    chain_name = "Hemköp"
    base_url = BASE_URL

    validation_url = f"{BASE_URL}/erbjudanden/{VALIDATION_STORE_ID}"

    search_input_selectors = (
        "input[placeholder*='Sök']",
        "input[type='search']",
        "input[name*='search']",
        "input[type='text']",
    )

    structured_card_selectors = (
        "[class*='offer-card']",
        "[class*='product-card']",
        "[class*='campaign-product']",
        "article[class*='offer']",
        ".offer-item",
        "[data-testid*='offer']",
    )
    card_fields = {
        "name": "h2, h3, h4, [class*='name'], [class*='title'], .product-name",
        "brand": "[class*='brand'], [class*='manufacturer']",
        "price": "[class*='price'], [class*='pris'], .campaign-price",
        "original": "[class*='original'], [class*='ordinary'], s, del, .was-price",
        "savings": "[class*='discount'], [class*='savings'], [class*='badge'], .save",
        "description": "[class*='description'], [class*='info'], .details",
        "member": "[class*='klubbpris'], [class*='member']",
    }
    image_domains = ("assets.axfood.se", "hemkop.se")

    # ------------------------------------------------------------------
    # Store search
    # ------------------------------------------------------------------

    async def _search_stores(self, query: str) -> StoreSearchResult:
        page = await self._new_page()
        try:
            await self._goto(page, STORE_FINDER_URL)
            await self._accept_cookies(page)
            # Angular app renders after DOMContentLoaded.
            await self._settle(page, self.settings.scraping_settle_ms * 2)
            searched = await self._fill_search(page, query)
            entries = await page.evaluate(_STORE_ENTRIES_JS)
        finally:
            await page.close()

        stores = stores_from_entries(entries)
        if not searched or all(e.get("fromLink") for e in entries):
            stores = filter_stores_by_query(stores, query)
        logger.info("Hemköp store search %r: %d stores", query, len(stores))
        return StoreSearchResult(stores=stores, query=query, total_count=len(stores))

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    async def _get_offers(self, store: Store) -> OffersResult:
        page = await self._new_page()
        try:
            await self._goto(page, f"{BASE_URL}/erbjudanden/{store.external_id}")
            await self._accept_cookies(page)
            await self._settle(page, self.settings.scraping_settle_ms * 2)

            if await self._click_first(page, SHOW_ALL_SELECTORS):
                logger.info("Hemköp: opened 'Se alla erbjudanden'")
            if not await self._open_product_tab(page):
                logger.info("Hemköp: no tab exposed product containers")

            await self._scroll_until_loaded(
                page,
                PRODUCT_CONTAINER_SELECTOR,
                target_count=self.settings.scraping_max_cards,
                load_more_selectors=LOAD_MORE_SELECTORS,
            )
            offers = await self._extract_offers(page, store)
        finally:
            await page.close()

        logger.info("Hemköp %s: %d offers", store.external_id, len(offers))
        return OffersResult(offers=offers, store=store)

    async def _open_product_tab(self, page: Page) -> bool:
        """Click through the tabs until the product grid is rendered."""
        containers = page.locator(PRODUCT_CONTAINER_SELECTOR)
        if await containers.count() >= MIN_PRODUCT_CONTAINERS:
            return True

        tabs = page.locator(TAB_SELECTOR)
        for index in range(await tabs.count()):
            tab = tabs.nth(index)
            try:
                await tab.click()
            except Exception as exc:
                logger.debug("Hemköp: tab %d not clickable (%s)", index, exc)
                continue
            await self._settle(page)
            if await containers.count() >= MIN_PRODUCT_CONTAINERS:
                logger.info("Hemköp: product grid found behind tab %d", index)
                return True
        return False

    async def _extract_generic(self, page: Page, store: Store) -> list[Offer]:
        """Parse run-together card text from the product grid."""
        for sel in PRODUCT_GRID_SELECTORS:
            cards = await self._collect_cards(
                page, sel, {"name": "h1, h2, h3, h4, strong, [class*='name'], [class*='title']"}
            )
            if not 3 < len(cards) < 500:
                continue

            offers: list[Offer] = []
            for index, card in enumerate(cards):
                try:
                    raw = parse_card_text(card.get("text") or "", card["fields"].get("name"))
                    if raw is None:
                        continue
                    raw["images"] = card.get("images") or []
                    raw["link"] = card.get("link")
                    offer = self._build_offer(store, raw)
                except Exception:
                    logger.debug("Hemköp: failed to parse grid card %d", index, exc_info=True)
                    continue
                if offer is not None:
                    offers.append(offer)

            if offers:
                logger.info("Hemköp: %d offers from grid selector %s", len(offers), sel)
                return offers
        return []

    async def _page_looks_intact(self, page: Page) -> bool:
        body = await page.locator("body").inner_text()
        return "erbjudanden" in body.lower() or "Hemköp" in body
