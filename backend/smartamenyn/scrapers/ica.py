"""ICA scraper -- store search and store-specific plus national offers.

Strategy (store search):
    1. Open https://www.ica.se/butiker/ and type the query into the search box.
    2. Observe the page's own request to the ``mdsastoresearch`` API and keep
       its Authorization header and ``url`` parameter.
    3. Page through the rest of the results with httpx using that token.
    4. If no API call was observed, scrape the store cards from the DOM and
       filter them by the query.

Strategy (offers):
    1. Open the store's offers page and switch to the in-store tab.
    2. Scroll until the offer grid stops growing, then extract.
    3. Repeat on the national offers page and merge both lists.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

import httpx
from playwright.async_api import Page, Response, TimeoutError as PlaywrightTimeout

from smartamenyn.scrapers.base import BaseScraper, dedupe_offers, filter_stores_by_query
from smartamenyn.scrapers.parsing import clean_text
from smartamenyn.scrapers.types import Offer, OffersResult, Store, StoreSearchResult

logger = logging.getLogger(__name__)

BASE_URL = "https://www.ica.se"
STORE_SEARCH_URL = f"{BASE_URL}/butiker/"
NATIONAL_OFFERS_URL = f"{BASE_URL}/erbjudanden/"
STORE_SEARCH_API = (
    "https://apim-pub.gw.ica.se/sverige/digx/mdsastoresearch/v1/page-and-filters"
)

STORE_PROFILES = ("maxi", "kvantum", "supermarket", "nara")

OFFER_CARD_SELECTOR = "[data-testid*='offer'], [class*='offer-card'], article[class*='offer']"

IN_STORE_TAB_SELECTORS = (
    "[role='tab']:has-text('I butik')",
    "button:has-text('I butik')",
    "a:has-text('Butikens erbjudanden')",
)
LOAD_MORE_SELECTORS = (
    "button:has-text('Visa fler')",
    "button:has-text('Ladda fler')",
)

_STORE_ID_RE = re.compile(r"-(\d{5,})/?(?:[?#].*)?$")
_STORE_PATH_RE = re.compile(r"/butiker/([^/]+)/(?:[^/]+/)?([^/?#]+)/?")

# Reads store cards (or bare store links when no card markup matches).
_STORE_CARDS_JS = """
() => {
  const text = (node) => (node ? (node.innerText || node.textContent || "").trim() : null);
  const cards = Array.from(document.querySelectorAll(
    "[data-testid*='store'], .store-card, .store-item, article[class*='store']"
  ));
  const entries = cards.map((el) => {
    const link = el.querySelector("a[href*='/butiker/']");
    return {
      name: text(el.querySelector("h2, h3, [class*='name'], [class*='title']")),
      address: text(el.querySelector("[class*='address'], address")),
      href: link ? link.getAttribute("href") : null,
    };
  });
  if (entries.some((e) => e.name && e.href)) return entries;
  return Array.from(document.querySelectorAll("a[href*='/butiker/']")).map((a) => ({
    name: text(a),
    address: null,
    href: a.getAttribute("href"),
  }));
}
"""


@dataclass
class IcaSearchSession:
    """What one observed store-search API call gives us."""

    auth_token: str
    url_param: str
    first_page: dict[str, Any] = field(default_factory=dict)


def store_from_api_card(card: dict[str, Any]) -> Store | None:
    """Convert one ``storeCards`` entry of the store-search API."""
    account = str(card.get("accountNumber") or "").strip()
    name = clean_text(card.get("storeName"))
    if not account or not name:
        return None

    address = card.get("address") or {}
    street = clean_text(address.get("street"))
    postal = clean_text(address.get("postalCode"))
    city = clean_text(address.get("city")) or None
    full_address = None
    if street:
        full_address = f"{street}, {postal} {city or ''}".strip().rstrip(",")

    offers_url = ((card.get("highlightUrls") or {}).get("offers") or {}).get("url")
    if offers_url and offers_url.startswith("/"):
        offers_url = f"{BASE_URL}{offers_url}"

    return Store(
        id=f"ica-{account}",
        name=name,
        address=full_address,
        city=city,
        chain="ica",
        external_id=account,
        profile=card.get("profile") or None,
        offers_url=offers_url or None,
    )


def stores_from_dom_entries(entries: list[dict[str, Any]], query: str | None) -> list[Store]:
    """Build stores from scraped card entries, keeping only those matching ``query``.

    The DOM path sees whatever the page happens to render, so the query
    filter is applied here rather than trusted to the site.
    """
    stores: list[Store] = []
    seen: set[str] = set()
    for entry in entries:
        name = clean_text(entry.get("name"))
        href = entry.get("href") or ""
        path = _STORE_PATH_RE.search(href)
        if not name or not path:
            continue

        id_match = _STORE_ID_RE.search(href)
        external_id = id_match.group(1) if id_match else path.group(2)
        if external_id in seen:
            continue
        seen.add(external_id)

        segment = path.group(1).lower()
        profile = segment.capitalize() if segment in STORE_PROFILES else None
        if profile is None:
            profile = next((p.capitalize() for p in STORE_PROFILES if p in name.lower()), None)

        stores.append(
            Store(
                id=f"ica-{external_id}",
                name=name,
                address=clean_text(entry.get("address")) or None,
                chain="ica",
                external_id=external_id,
                profile=profile,
                offers_url=f"{BASE_URL}{href}" if href.startswith("/") else href or None,
            )
        )
    return filter_stores_by_query(stores, query)


def _is_store_search_response(response: Response) -> bool:
    return "mdsastoresearch" in response.url


class IcaScraper(BaseScraper):
    """Scraper for ICA stores and offers."""

    chain_id = "ica"
    chain_name = "ICA"
    base_url = BASE_URL

    validation_url = NATIONAL_OFFERS_URL
    validation_markers = ("h1, [class*='title']", "main, [class*='content']")

    cookie_selectors = (
        "#onetrust-accept-btn-handler",
        "button[id*='accept']",
        "button[class*='accept']",
        "button:has-text('Acceptera')",
    )

    structured_card_selectors = (
        "[data-testid*='offer-card']",
        "[data-testid*='offer']",
        "[class*='offer-card']",
        "article[class*='offer']",
        "[class*='product-card']",
    )
    card_fields = {
        "name": "h2, h3, h4, [class*='name'], [class*='title']",
        "brand": "[class*='brand'], [class*='manufacturer']",
        "price": "[class*='price'], [class*='pris']",
        "original": "[class*='original'], [class*='ord-pris'], s, del",
        "savings": "[class*='discount'], [class*='savings'], [class*='badge']",
        "description": "[class*='description'], [class*='info']",
        "member": "[class*='stammis'], [class*='member']",
        "category": "[data-category], [class*='category']",
    }
    image_domains = ("assets.icanet.se", "ica.se")

    # ------------------------------------------------------------------
    # Store search
    # ------------------------------------------------------------------

    async def _search_stores(self, query: str) -> StoreSearchResult:
        session = await self._capture_search_session(query)
        if session is not None:
            cards = list(session.first_page.get("storeCards") or [])
            total = int(session.first_page.get("totalNrOfStores") or len(cards))
            cards.extend(await self._fetch_remaining_pages(session, total))
            stores = [s for s in map(store_from_api_card, cards) if s is not None]
            logger.info("ICA store-search API: %d of %d stores", len(stores), total)
            return StoreSearchResult(stores=stores, query=query, total_count=total)

        logger.info("ICA store-search API not observed, falling back to DOM scraping")
        entries = await self._scrape_store_cards(query)
        stores = stores_from_dom_entries(entries, query)
        return StoreSearchResult(stores=stores, query=query, total_count=len(stores))

    async def _capture_search_session(self, query: str) -> IcaSearchSession | None:
        """Search once in the browser and capture the API call it makes."""
        page = await self._new_page()
        try:
            await self._goto(page, STORE_SEARCH_URL)
            await self._accept_cookies(page)

            search_input = await self._find_visible(page, self.search_input_selectors)
            if search_input is None:
                return None

            try:
                async with page.expect_response(
                    _is_store_search_response,
                    timeout=self.settings.scraping_wait_timeout * 2,
                ) as response_info:
                    await search_input.fill(query)
                    await search_input.press("Enter")
                response = await response_info.value
            except PlaywrightTimeout:
                logger.info("ICA: no store-search API call within timeout")
                return None

            headers = await response.request.all_headers()
            auth_token = headers.get("authorization")
            url_match = re.search(r"url=([^&]+)", response.request.url)
            if not response.ok or not auth_token or not url_match:
                return None

            try:
                first_page = await response.json()
            except ValueError:
                logger.info("ICA: store-search API returned non-JSON body")
                return None
            return IcaSearchSession(
                auth_token=auth_token,
                url_param=url_match.group(1),
                first_page=first_page or {},
            )
        finally:
            await page.close()

    async def _fetch_remaining_pages(self, session: IcaSearchSession, total: int) -> list[dict]:
        """Fetch result pages after the first one using the captured token."""
        page_size = self.settings.ica_store_page_size
        if total <= page_size:
            return []

        client = await self._get_http_client()
        cards: list[dict] = []
        for skip in range(page_size, total, page_size):
            url = f"{STORE_SEARCH_API}?url={session.url_param}&take={page_size}&skip={skip}"
            try:
                resp = await client.get(
                    url,
                    headers={"Authorization": session.auth_token, "Accept": "application/json"},
                )
                resp.raise_for_status()
                cards.extend(resp.json().get("storeCards") or [])
            except (httpx.HTTPError, ValueError):
                logger.warning("ICA store search: page at skip=%d failed", skip, exc_info=True)
        return cards

    async def _scrape_store_cards(self, query: str) -> list[dict[str, Any]]:
        page = await self._new_page()
        try:
            await self._goto(page, STORE_SEARCH_URL)
            await self._accept_cookies(page)
            await self._fill_search(page, query)
            return await page.evaluate(_STORE_CARDS_JS)
        finally:
            await page.close()

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    def _store_offers_url(self, store: Store) -> str:
        if store.offers_url:
            return store.offers_url
        return f"{BASE_URL}/butiker/{store.external_id}/erbjudanden/"

    async def _get_offers(self, store: Store) -> OffersResult:
        page = await self._new_page()
        try:
            store_offers = await self._offers_from_url(
                page, store, self._store_offers_url(store), in_store=True
            )
            national = await self._offers_from_url(page, store, NATIONAL_OFFERS_URL)
        finally:
            await page.close()

        offers = dedupe_offers([*store_offers, *national])
        logger.info(
            "ICA %s: %d store offers, %d national, %d unique",
            store.external_id,
            len(store_offers),
            len(national),
            len(offers),
        )
        return OffersResult(offers=offers, store=store)

    async def _offers_from_url(
        self, page: Page, store: Store, url: str, in_store: bool = False
    ) -> list[Offer]:
        await self._goto(page, url)
        await self._accept_cookies(page)
        if in_store and not await self._click_first(page, IN_STORE_TAB_SELECTORS):
            logger.debug("ICA: no in-store tab on %s", url)
        await self._scroll_until_loaded(
            page,
            OFFER_CARD_SELECTOR,
            target_count=self.settings.scraping_max_cards,
            load_more_selectors=LOAD_MORE_SELECTORS,
        )
        return await self._extract_offers(page, store)
