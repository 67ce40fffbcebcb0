"""Coop scraper -- store links from the store finder, offers per store page.

Store pages look like https://www.coop.se/butiker-erbjudanden/{type}/{slug}/
where ``type`` is the store format (coop, stora-coop, coop-nara, ...).
"""

from __future__ import annotations

import logging
import re
from typing import Any

from playwright.async_api import Page

from smartamenyn.scrapers.base import BaseScraper
from smartamenyn.scrapers.parsing import clean_text, parse_price_info
from smartamenyn.scrapers.types import Offer, OffersResult, Store, StoreSearchResult

logger = logging.getLogger(__name__)

BASE_URL = "https://www.coop.se"
STORE_FINDER_URL = f"{BASE_URL}/butiker-erbjudanden/"

_STORE_LINK_RE = re.compile(r"/butiker-erbjudanden/([^/]+)/([^/?#]+)")
_PRICE_ONLY_RE = re.compile(r"^\d+(?:[.,:]\d*)?\s*(?:kr|:-|st)?$", re.IGNORECASE)

_STORE_LINKS_JS = """
() => Array.from(document.querySelectorAll("a[href*='/butiker-erbjudanden/']")).map((a) => ({
  href: a.getAttribute("href"),
  text: (a.innerText || a.textContent || "").trim(),
}))
"""

# Walk up from every price element to the nearest product-ish container and
# read name, price text and image from it.
_PRICE_CONTAINERS_JS = """
() => {
  const containers = [];
  const marker = /product|offer|item|card/i;
  document.querySelectorAll("[class*='price'], [class*='Price']").forEach((priceEl) => {
    let parent = priceEl.parentElement;
    for (let depth = 0; depth < 6 && parent; depth++) {
      const cls = typeof parent.className === "string" ? parent.className : "";
      if (marker.test(cls)) {
        if (!containers.includes(parent)) containers.push(parent);
        break;
      }
      parent = parent.parentElement;
    }
  });
  return containers.map((item) => {
    try {
      const nameEl = item.querySelector(
        "[class*='name'], [class*='Name'], [class*='title'], [class*='Title'], h2, h3, h4, p"
      );
      const priceEl = item.querySelector("[class*='price'], [class*='Price']");
      const img = item.querySelector("img");
      const link = item.querySelector("a[href]");
      return {
        name: nameEl ? (nameEl.textContent || "").trim() : null,
        priceText: priceEl ? (priceEl.textContent || "").trim() : null,
        text: item.innerText || item.textContent || "",
        imageAlt: img ? img.getAttribute("alt") : null,
        images: img ? [img.getAttribute("src"), img.getAttribute("data-src")].filter(Boolean) : [],
        link: link ? link.href : null,
      };
    } catch (e) {
      return null;
    }
  }).filter(Boolean);
}
"""


def stores_from_links(links: list[dict[str, Any]], query: str | None) -> list[Store]:
    """Turn store-finder links into stores, keeping those whose text matches ``query``."""
    needle = (query or "").strip().lower()
    stores: list[Store] = []
    seen: set[str] = set()
    for link in links:
        href = link.get("href") or ""
        name = clean_text(link.get("text"))
        match = _STORE_LINK_RE.search(href)
        if not match or not name:
            continue
        if needle and needle not in name.lower():
            continue

        store_type, slug = match.groups()
        if slug in seen:
            continue
        seen.add(slug)
        stores.append(
            Store(
                id=f"coop-{slug}",
                name=name,
                chain="coop",
                external_id=slug,
                profile=store_type,
                offers_url=f"{BASE_URL}{href}" if href.startswith("/") else href,
            )
        )
    return stores


def raw_from_price_container(item: dict[str, Any]) -> dict[str, Any] | None:
    """Map one walked-up price container onto offer fields."""
    name = clean_text(item.get("name"))
    if not name or len(name) < 2 or _PRICE_ONLY_RE.match(name):
        name = clean_text(item.get("imageAlt"))
    if not name or len(name) <= 2 or len(name) > 100:
        return None

    price = parse_price_info(item.get("priceText")) or parse_price_info(item.get("text"))
    if price is None:
        return None
    return {
        "name": name,
        "price_info": price,
        "images": item.get("images") or [],
        "link": item.get("link"),
        "text": item.get("text") or "",
    }


class CoopScraper(BaseScraper):
    """Scraper for Coop store offers."""

    chain_id = "coop"
    chain_name = "Coop"
    base_url = BASE_URL

    validation_url = STORE_FINDER_URL
    validation_markers = ("main, [class*='content']",)

    structured_card_selectors = (
        "[data-testid='product-teaser']",
        "article[class*='ProductTeaser']",
        "[class*='ProductTeaser']",
        "[class*='offer-card']",
    )
    card_fields = {
        "name": "[class*='ProductTeaser-heading'], [class*='title'], h3, h2",
        "brand": "[class*='ProductTeaser-info'], [class*='brand']",
        "price": "[class*='Splash'], [class*='price'], [class*='Price']",
        "original": "[class*='ordinary'], [class*='Ordinary'], s, del",
        "savings": "[class*='savings'], [class*='discount']",
        "description": "[class*='description'], [class*='info']",
        "member": "[class*='member'], [class*='Member']",
        "category": "[data-category]",
    }
    image_domains = ("res.cloudinary.com/coopsverige", "coop.se")

    async def _search_stores(self, query: str) -> StoreSearchResult:
        page = await self._new_page()
        try:
            await self._goto(page, STORE_FINDER_URL)
            await self._settle(page, self.settings.scraping_settle_ms * 3)
            await self._accept_cookies(page)
            await self._fill_search(page, query)
            links = await page.evaluate(_STORE_LINKS_JS)
        finally:
            await page.close()

        stores = stores_from_links(links, query)
        logger.info("Coop store search %r: %d stores from %d links", query, len(stores), len(links))
        return StoreSearchResult(stores=stores, query=query, total_count=len(stores))

    def _store_offers_url(self, store: Store) -> str:
        if store.offers_url:
            return store.offers_url
        return f"{STORE_FINDER_URL}{store.profile or 'coop'}/{store.external_id}/"

    async def _get_offers(self, store: Store) -> OffersResult:
        page = await self._new_page()
        try:
            await self._goto(page, self._store_offers_url(store))
            await self._settle(page, self.settings.scraping_settle_ms * 2)
            # Cookie banner covers the offer grid, so it has to go first.
            await self._accept_cookies(page)
            await self._scroll_until_loaded(page)
            offers = await self._extract_offers(page, store)
        finally:
            await page.close()

        logger.info("Coop %s: %d offers", store.external_id, len(offers))
        return OffersResult(offers=offers, store=store)

    async def _extract_generic(self, page: Page, store: Store) -> list[Offer]:
        items = await page.evaluate(_PRICE_CONTAINERS_JS)
        logger.debug("Coop: %d price containers", len(items))

        offers: list[Offer] = []
        for index, item in enumerate(items):
            try:
                raw = raw_from_price_container(item)
                offer = self._build_offer(store, raw) if raw else None
            except Exception:
                logger.debug("Coop: failed to parse price container %d", index, exc_info=True)
                continue
            if offer is not None:
                offers.append(offer)
        return offers
