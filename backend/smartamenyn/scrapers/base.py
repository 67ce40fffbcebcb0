"""Abstract base scraper for all grocery chain scrapers."""

from __future__ import annotations

import itertools
import logging
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from decimal import Decimal
from typing import Any

import httpx
from playwright.async_api import (
    Browser,
    BrowserContext,
    Locator,
    Page,
    TimeoutError as PlaywrightTimeout,
    async_playwright,
)

from smartamenyn.config import get_settings
from smartamenyn.scrapers.parsing import (
    PriceInfo,
    clean_text,
    is_plausible_price,
    parse_decimal,
    parse_max_per_household,
    parse_price_info,
    parse_price_lines,
    pick_image_url,
    requires_membership,
)
from smartamenyn.scrapers.types import (
    ChainId,
    Offer,
    OffersResult,
    ScraperResult,
    Store,
    StoreSearchResult,
    ValidationResult,
    utcnow,
)
from smartamenyn.services.categories import classify

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)

# Consecutive scrolls without page growth before giving up.
MAX_SCROLL_STALLS = 3

# Widths of the matching columns in the offers table.
BRAND_MAX_LENGTH = 200
UNIT_MAX_LENGTH = 100
SAVINGS_MAX_LENGTH = 200

_PRICE_ONLY_RE = re.compile(r"^\d+(?:[.,:]\d*)?\s*(?:kr|:-|st)?$", re.IGNORECASE)

GENERIC_CARD_SELECTORS = (
    "[data-testid*='product']",
    "[class*='ProductCard']",
    "[class*='product-card']",
    "[class*='offer-card']",
    "article",
    "[class*='card']",
    "li[class*='item']",
)

GENERIC_CARD_FIELDS = {
    "name": "h1, h2, h3, h4, [class*='name'], [class*='Name'], [class*='title'], [class*='Title'], strong",
    "price": "[class*='price'], [class*='Price'], [class*='pris']",
    "original": "s, del, [class*='original'], [class*='ordinary']",
}

# Serialises one element into a plain dict. Errors on a single element yield
# null so one malformed card never aborts the whole pass.
_COLLECT_CARDS_JS = """
([selector, fields, limit]) => {
  const texts = (node) => (node ? (node.innerText || node.textContent || "").trim() : null);
  return Array.from(document.querySelectorAll(selector)).slice(0, limit).map((el) => {
    try {
      const text = el.innerText || el.textContent || "";
      const card = {
        text,
        lines: text.split("\\n").map((l) => l.trim()).filter(Boolean),
        fields: {},
        images: [],
        image_alt: null,
        link: null,
        data: {},
      };
      for (const [key, sel] of Object.entries(fields)) {
        card.fields[key] = texts(el.querySelector(sel));
      }
      el.querySelectorAll("img, source").forEach((img) => {
        for (const attr of ["src", "data-src", "srcset", "data-srcset"]) {
          const value = img.getAttribute(attr);
          if (value) card.images.push(value);
        }
        if (!card.image_alt && img.getAttribute("alt")) card.image_alt = img.getAttribute("alt");
      });
      const anchor = el.matches("a[href]") ? el : el.querySelector("a[href]");
      if (anchor) card.link = anchor.href;
      for (const attr of el.getAttributeNames()) {
        if (attr.startsWith("data-")) card.data[attr] = el.getAttribute(attr);
      }
      return card;
    } catch (e) {
      return null;
    }
  }).filter(Boolean);
}
"""


class NavigationError(RuntimeError):
    """A page could not be loaded."""


class UnknownChainError(ValueError):
    """The chain id has no registered scraper."""

    def __init__(self, chain: str) -> None:
        self.chain = chain
        super().__init__(f"Unsupported chain: {chain}")


def dedupe_offers(offers: Iterable[Offer]) -> list[Offer]:
    """Drop offers whose (name, offer price) pair was already seen."""
    seen: set[tuple[str, Decimal]] = set()
    unique: list[Offer] = []
    for offer in offers:
        key = (offer.name, offer.offer_price)
        if key in seen:
            continue
        seen.add(key)
        unique.append(offer)
    return unique


def clip_text(text: str | None, limit: int) -> str | None:
    """Collapse whitespace and cut ``text`` to ``limit`` characters."""
    value = clean_text(text)[:limit].rstrip()
    return value or None


def filter_stores_by_query(stores: Iterable[Store], query: str | None) -> list[Store]:
    """Keep stores whose name, address, city or profile contains ``query``."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(stores)
    return [
        store
        for store in stores
        if any(
            needle in (value or "").lower()
            for value in (store.name, store.address, store.city, store.profile)
        )
    ]


class BaseScraper(ABC):
    """Base class every chain-specific scraper must extend.

    Subclasses set the chain attributes below and implement
    :meth:`_search_stores` and :meth:`_get_offers`. The public
    :meth:`search_stores` and :meth:`get_offers` wrap them in a timing
    envelope and never raise; :meth:`validate` never raises either.

    A scraper owns one browser context for its lifetime. :meth:`init` is
    idempotent and every page operation calls it; :meth:`close` tears the
    browser down so the instance can be reused.
    """

    # ------------------------------------------------------------------
    # Chain-specific configuration (override in subclasses)
    # ------------------------------------------------------------------
    chain_id: ChainId
    chain_name: str = ""
    base_url: str = ""

    validation_url: str = ""
    validation_markers: tuple[str, ...] = ("main", "h1, [class*='title']")

    cookie_selectors: tuple[str, ...] = (
        "#onetrust-accept-btn-handler",
        "button:has-text('Acceptera alla')",
        "button:has-text('Acceptera')",
        "button:has-text('Godkänn')",
        "button[id*='accept']",
    )
    search_input_selectors: tuple[str, ...] = (
        "input[type='search']",
        "input[placeholder*='Sök']",
        "input[placeholder*='butik']",
        "input[name*='search']",
    )

    # Structured extraction: card containers tried in order, and the field
    # selectors read inside each card.
    structured_card_selectors: tuple[str, ...] = ()
    card_fields: dict[str, str] = {}
    min_structured_results: int = 3

    image_domains: tuple[str, ...] = ()

    def __init__(self) -> None:
        self.settings = get_settings()
        self._playwright = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._http_client: httpx.AsyncClient | None = None
        self._id_counter = itertools.count(1)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._context is not None

    async def init(self) -> None:
        """Launch Chromium and open the shared context (no-op when open)."""
        if self._context is not None:
            return

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.settings.scraping_headless,
            args=["--no-sandbox", "--disable-setuid-sandbox"],
        )
        self._context = await self._browser.new_context(
            viewport={"width": 1280, "height": 900},
            locale="sv-SE",
            timezone_id="Europe/Stockholm",
            user_agent=USER_AGENT,
        )
        self._context.set_default_timeout(self.settings.scraping_timeout)
        logger.debug("%s browser started", self.chain_name)

    async def _new_page(self) -> Page:
        await self.init()
        return await self._context.new_page()

    async def close(self) -> None:
        """Release all resources (browser + HTTP client)."""
        if self._context:
            await self._context.close()
            self._context = None
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    # ------------------------------------------------------------------
    # HTTP client
    # ------------------------------------------------------------------

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Return a shared ``httpx.AsyncClient``."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.scraping_timeout / 1000),
                follow_redirects=True,
                headers={
                    "User-Agent": USER_AGENT,
                    "Accept-Language": "sv-SE,sv;q=0.9,en-US;q=0.8,en;q=0.7",
                },
            )
        return self._http_client

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def search_stores(self, query: str) -> ScraperResult[StoreSearchResult]:
        return await self._timed(self._search_stores, query)

    async def get_offers(self, store: Store) -> ScraperResult[OffersResult]:
        return await self._timed(self._get_offers, store)

    async def validate(self) -> ValidationResult:
        """Load a known page and check that its landmark elements exist."""
        page = None
        try:
            page = await self._new_page()
            await self._goto(page, self.validation_url or self.base_url)
            # Client-rendered landmarks appear after DOMContentLoaded.
            await self._settle(page, self.settings.scraping_settle_ms * 2)
            intact = await self._page_looks_intact(page)
        except Exception as exc:
            logger.warning("%s validation failed: %s", self.chain_name, exc)
            return ValidationResult(
                chain=self.chain_id,
                valid=False,
                message=f"{self.chain_name} validation error: {exc}",
            )
        finally:
            if page is not None:
                await page.close()

        if intact:
            return ValidationResult(
                chain=self.chain_id,
                valid=True,
                message=f"{self.chain_name} scraper validation passed",
            )
        return ValidationResult(
            chain=self.chain_id,
            valid=False,
            message=f"{self.chain_name} page structure may have changed",
        )

    @abstractmethod
    async def _search_stores(self, query: str) -> StoreSearchResult:
        """Find stores matching ``query``."""

    @abstractmethod
    async def _get_offers(self, store: Store) -> OffersResult:
        """Scrape the current offers for ``store``."""

    async def _page_looks_intact(self, page: Page) -> bool:
        for marker in self.validation_markers:
            if await page.locator(marker).count() == 0:
                logger.info("%s validation marker missing: %s", self.chain_name, marker)
                return False
        return True

    async def _timed(
        self, operation: Callable[..., Awaitable[Any]], *args: Any
    ) -> ScraperResult:
        """Run ``operation`` and wrap its outcome in a :class:`ScraperResult`."""
        started = time.perf_counter()
        try:
            data = await operation(*args)
        except Exception as exc:
            duration_ms = int((time.perf_counter() - started) * 1000)
            logger.warning(
                "%s %s failed after %d ms: %s",
                self.chain_name,
                operation.__name__.lstrip("_"),
                duration_ms,
                exc,
            )
            return ScraperResult(
                success=False,
                error=str(exc) or exc.__class__.__name__,
                scraped_at=utcnow(),
                duration_ms=duration_ms,
            )
        return ScraperResult(
            success=True,
            data=data,
            scraped_at=utcnow(),
            duration_ms=int((time.perf_counter() - started) * 1000),
        )

    # ------------------------------------------------------------------
    # Page helpers
    # ------------------------------------------------------------------

    async def _goto(self, page: Page, url: str) -> None:
        logger.info("%s: loading %s", self.chain_name, url)
        response = await page.goto(
            url, wait_until="domcontentloaded", timeout=self.settings.scraping_timeout
        )
        if response is not None and response.status >= 400:
            raise NavigationError(f"{url} returned HTTP {response.status}")

    async def _settle(self, page: Page, ms: int | None = None) -> None:
        await page.wait_for_timeout(ms if ms is not None else self.settings.scraping_settle_ms)

    async def _find_visible(
        self, page: Page, selectors: Iterable[str], timeout: int | None = None
    ) -> Locator | None:
        """Return the first visible element among ``selectors``."""
        wait = timeout if timeout is not None else self.settings.scraping_wait_timeout
        for sel in selectors:
            try:
                element = page.locator(sel).first
                if await element.is_visible(timeout=wait):
                    return element
            except PlaywrightTimeout:
                continue
        return None

    async def _click_first(
        self, page: Page, selectors: Iterable[str], timeout: int | None = None
    ) -> bool:
        """Best-effort click on the first visible match; False when nothing was clicked."""
        for sel in selectors:
            try:
                element = page.locator(sel).first
                if await element.is_visible(timeout=timeout or 1000):
                    await element.click()
                    await self._settle(page)
                    return True
            except Exception as exc:
                logger.debug("%s: click on %s skipped (%s)", self.chain_name, sel, exc)
                continue
        return False

    async def _accept_cookies(self, page: Page) -> bool:
        """Dismiss the cookie consent dialog when one is shown."""
        for sel in self.cookie_selectors:
            try:
                btn = page.locator(sel).first
                if await btn.is_visible(timeout=3000):
                    await btn.click()
                    await page.wait_for_timeout(1000)
                    return True
            except Exception as exc:
                logger.debug("%s: cookie button %s skipped (%s)", self.chain_name, sel, exc)
                continue
        return False

    async def _fill_search(
        self, page: Page, query: str, selectors: Iterable[str] | None = None
    ) -> bool:
        """Type ``query`` into the first visible search box and submit it."""
        search_input = await self._find_visible(page, selectors or self.search_input_selectors)
        if search_input is None:
            logger.info("%s: no search input found", self.chain_name)
            return False
        try:
            await search_input.fill(query)
            await search_input.press("Enter")
        except PlaywrightTimeout:
            logger.debug("%s: search input did not accept the query", self.chain_name)
            return False
        await self._settle(page, self.settings.scraping_settle_ms * 2)
        return True

    async def _scroll_until_loaded(
        self,
        page: Page,
        target_selector: str | None = None,
        target_count: int = 0,
        load_more_selectors: Iterable[str] = (),
    ) -> int:
        """Scroll until lazy content has materialised.

        Stops when ``target_count`` containers matching ``target_selector``
        exist, when the page height stops growing for
        :data:`MAX_SCROLL_STALLS` consecutive scrolls, or after
        ``scraping_max_scrolls`` iterations. Returns the final container count.
        """
        load_more = tuple(load_more_selectors)
        last_height = await page.evaluate("document.body.scrollHeight")
        stalls = 0

        for attempt in range(self.settings.scraping_max_scrolls):
            if target_selector and target_count:
                if await page.locator(target_selector).count() >= target_count:
                    logger.debug("%s: target reached after %d scrolls", self.chain_name, attempt)
                    break

            await page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
            await self._settle(page)

            if load_more and await self._click_first(page, load_more, timeout=500):
                stalls = 0
                continue

            new_height = await page.evaluate("document.body.scrollHeight")
            if new_height <= last_height:
                stalls += 1
                if stalls >= MAX_SCROLL_STALLS:
                    break
            else:
                stalls = 0
                last_height = new_height

        await page.evaluate("window.scrollTo(0, 0)")
        if target_selector:
            return await page.locator(target_selector).count()
        return 0

    async def _collect_cards(
        self,
        page: Page,
        card_selector: str,
        fields: dict[str, str] | None = None,
        limit: int = 500,
    ) -> list[dict[str, Any]]:
        """Read every card matching ``card_selector`` into a plain dict.

        Each dict has ``text``, ``lines``, ``fields`` (first match of each
        field selector, None when absent), ``images``, ``image_alt``,
        ``link`` and ``data`` (the card's data-* attributes).
        """
        return await page.evaluate(_COLLECT_CARDS_JS, [card_selector, fields or {}, limit])

    # ------------------------------------------------------------------
    # Extraction cascade
    # ------------------------------------------------------------------

    async def _extract_offers(self, page: Page, store: Store) -> list[Offer]:
        """Structured selectors first, generic DOM heuristics when they come up short."""
        offers = await self._extract_structured(page, store)
        if len(offers) >= self.min_structured_results:
            logger.info("%s: %d offers from structured cards", self.chain_name, len(offers))
            return offers

        logger.info(
            "%s: structured extraction found %d offers, trying generic fallback",
            self.chain_name,
            len(offers),
        )
        fallback = await self._extract_generic(page, store)
        merged = dedupe_offers([*offers, *fallback])
        logger.info("%s: %d offers after generic fallback", self.chain_name, len(merged))
        return merged

    async def _extract_structured(self, page: Page, store: Store) -> list[Offer]:
        for sel in self.structured_card_selectors:
            cards = await self._collect_cards(page, sel, self.card_fields)
            if cards:
                logger.debug("%s: %d cards for %s", self.chain_name, len(cards), sel)
                return self._offers_from_cards(store, cards)
        return []

    async def _extract_generic(self, page: Page, store: Store) -> list[Offer]:
        for sel in GENERIC_CARD_SELECTORS:
            cards = await self._collect_cards(page, sel, GENERIC_CARD_FIELDS)
            # A handful of matches is page chrome, thousands is layout wrappers.
            if not 3 < len(cards) < 500:
                continue
            offers = self._offers_from_cards(store, cards)
            if offers:
                logger.debug("%s: generic selector %s gave %d offers", self.chain_name, sel, len(offers))
                return offers
        return []

    def _offers_from_cards(self, store: Store, cards: list[dict[str, Any]]) -> list[Offer]:
        offers: list[Offer] = []
        for index, card in enumerate(cards):
            try:
                offer = self._build_offer(store, self._raw_from_card(card))
            except Exception:
                logger.debug("%s: failed to parse card %d", self.chain_name, index, exc_info=True)
                continue
            if offer is not None:
                offers.append(offer)
        return dedupe_offers(offers)

    def _raw_from_card(self, card: dict[str, Any]) -> dict[str, Any]:
        """Map a collected card onto the field names :meth:`_build_offer` reads."""
        fields = card.get("fields") or {}
        name = clean_text(fields.get("name"))
        if not name or len(name) < 2 or _PRICE_ONLY_RE.match(name):
            name = clean_text(card.get("image_alt"))

        text = card.get("text") or ""
        price_text = fields.get("price")
        price_info = parse_price_info(price_text) if price_text else None
        if price_info is None:
            price_info = parse_price_lines(card.get("lines") or [])

        return {
            "name": name,
            "brand": clean_text(fields.get("brand")) or None,
            "description": clean_text(fields.get("description")) or None,
            "price_info": price_info,
            "original_price": parse_decimal(fields.get("original")),
            "savings": clean_text(fields.get("savings")) or None,
            "images": card.get("images") or [],
            "link": card.get("link"),
            "store_category": clean_text(fields.get("category")) or None,
            "membership": fields.get("member") is not None,
            "text": text,
        }

    # ------------------------------------------------------------------
    # Offer assembly
    # ------------------------------------------------------------------

    def generate_offer_id(self, store: Store, name: str) -> str:
        """``{chain}-{store}-{name hash}-{ms}-{counter}``; unique per pass, not stable."""
        slug = re.sub(r"[^a-zåäö0-9]", "", name.lower())[:20]
        millis = int(time.time() * 1000)
        return f"{self.chain_id}-{store.external_id}-{slug}-{millis}-{next(self._id_counter)}"

    def _build_offer(self, store: Store, raw: dict[str, Any]) -> Offer | None:
        """Assemble and validate one offer; None when the card is not usable."""
        name = clean_text(raw.get("name"))
        if len(name) < 2 or len(name) > 150:
            return None

        price: PriceInfo | None = raw.get("price_info")
        if price is None or not is_plausible_price(price.offer_price):
            return None

        multi_buy = bool(price.quantity and price.quantity > 1 and price.quantity_price)
        # Ordinary prices on multi-buy cards are per item.
        floor = price.quantity_price if multi_buy else price.offer_price
        original = raw.get("original_price") or price.original_price
        if original is not None and (not is_plausible_price(original) or original <= floor):
            original = None

        text = raw.get("text") or ""
        membership = bool(raw.get("membership")) or requires_membership(text)

        return Offer(
            id=self.generate_offer_id(store, name),
            name=name,
            brand=clip_text(raw.get("brand"), BRAND_MAX_LENGTH),
            description=raw.get("description"),
            original_price=original,
            offer_price=price.offer_price,
            quantity=price.quantity if multi_buy else None,
            quantity_price=price.quantity_price if multi_buy else None,
            unit=clip_text(raw.get("unit") or price.unit, UNIT_MAX_LENGTH),
            savings=clip_text(raw.get("savings"), SAVINGS_MAX_LENGTH),
            image_url=pick_image_url(raw.get("images") or [], self.image_domains, self.base_url),
            offer_url=raw.get("link"),
            store_id=store.id,
            chain=self.chain_id,
            category=classify(raw.get("store_category"), name, self.chain_id),
            max_per_household=parse_max_per_household(text),
            requires_membership=membership,
        )
