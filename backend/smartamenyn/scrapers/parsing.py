"""Price, unit and badge parsing for Swedish grocery offer markup.

Retailers print prices in several shapes, often split across elements:

    "12,50 kr"   "29:90"   "50:-"   "149:-/kg"   "5,00/st"
    "3 för 89 kr"   "2 FÖR 89,90"   "2 FÖR" + "50,00" on separate lines

Everything here is a pure function so it can be exercised without a browser.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from urllib.parse import urljoin

logger = logging.getLogger(__name__)

PRICE_MIN = Decimal("1")
PRICE_MAX = Decimal("10000")
CENT = Decimal("0.01")

_MULTI_BUY_RE = re.compile(r"(\d+)\s*för\s*(\d+(?:[.,:]\d{1,2})?)", re.IGNORECASE)
_QUANTITY_ONLY_RE = re.compile(r"^\s*(\d+)\s*för\s*$", re.IGNORECASE)
_DECIMAL_RE = re.compile(r"(\d+)(?:[.,:](\d{1,2})(?!\d))?")
_COLON_PRICE_RE = re.compile(r"(\d+):(\d{2}|-)(?:\s*/\s*(\w+))?")
_UNIT_RE = re.compile(r"/\s*(\w+)")
# A price token needs decimals, a ":-" suffix or a "kr" suffix, so that
# weights such as "500g" and pack sizes are never read as prices.
_PRICE_TOKEN_RE = re.compile(
    r"(?<![\d.,:])(\d{1,5})(?:[.,:](\d{2})(?!\d)|:-|(?=\s*kr\b))",
    re.IGNORECASE,
)
_COMPARISON_PRICE_RE = re.compile(
    r"(?:jmf|jämf|jämförpris)\.?\s*(?:pris)?\s*:?\s*\d+(?:[.,:]\d{1,2})?(?::-)?(?:\s*kr)?(?:\s*/\s*\w+)?",
    re.IGNORECASE,
)
# Deposit and savings amounts sit next to the price but are never the price.
_DEPOSIT_RE = re.compile(r"(?:\+\s*)?pant\s*\d+(?:[.,:]\d{1,2})?\s*(?:kr|:-)?", re.IGNORECASE)
_SAVINGS_RE = re.compile(
    r"spara\s*(?:upp till\s*)?\d+(?:[.,:]\d{1,2})?\s*(?:kr|:-)?", re.IGNORECASE
)
_MAX_PER_HOUSEHOLD_RE = re.compile(
    r"\bmax\.?\s*(\d+)\s*(?:(?:köp|st|förp)\b|/\s*hushåll)",
    re.IGNORECASE,
)
_MEMBERSHIP_RE = re.compile(
    r"(klubbpris|stammispris|stammis|medlemspris|lidl\s*plus)",
    re.IGNORECASE,
)
_PLACEHOLDER_MARKERS = ("placeholder", "blank.gif", "spinner", "loading.gif", "no-image")


@dataclass
class PriceInfo:
    """Normalised price fields of one offer card."""

    offer_price: Decimal
    quantity: int | None = None
    quantity_price: Decimal | None = None
    unit: str | None = None
    original_price: Decimal | None = None
    ambiguous: bool = False


def clean_text(text: str | None) -> str:
    """Collapse runs of whitespace into single spaces."""
    if not text:
        return ""
    return " ".join(text.split())


def is_plausible_price(value: Decimal | None) -> bool:
    return value is not None and PRICE_MIN <= value <= PRICE_MAX


def _to_decimal(whole: str, fraction: str | None = None) -> Decimal | None:
    try:
        if fraction:
            return Decimal(f"{whole}.{fraction}")
        return Decimal(whole)
    except InvalidOperation:
        return None


def parse_decimal(text: str | None) -> Decimal | None:
    """Parse the first numeral in ``text``, accepting ``,``, ``.`` or ``:`` decimals."""
    if text is None:
        return None
    match = _DECIMAL_RE.search(str(text))
    if not match:
        return None
    return _to_decimal(match.group(1), match.group(2))


def parse_multi_buy(text: str | None) -> tuple[int, Decimal] | None:
    """Return ``(quantity, total)`` for "N för M kr" style phrasing."""
    if not text:
        return None
    match = _MULTI_BUY_RE.search(text)
    if not match:
        return None
    quantity = int(match.group(1))
    total = parse_decimal(match.group(2))
    if quantity < 1 or total is None:
        return None
    return quantity, total


def per_unit(total: Decimal, quantity: int) -> Decimal:
    return (total / quantity).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_price(text: str | None) -> Decimal | None:
    """Parse a price string into a single canonical value.

    "N för M kr" yields the per-unit price ``round(M / N, 2)``; anything else
    yields the first numeral with comma read as the decimal point.
    """
    if not text:
        return None
    multi = parse_multi_buy(text)
    if multi:
        quantity, total = multi
        return per_unit(total, quantity)
    return parse_decimal(text)


def parse_unit(text: str | None) -> str | None:
    """Return the unit of a trailing ``/kg``, ``/st`` style token."""
    if not text:
        return None
    match = _UNIT_RE.search(text)
    return match.group(1).lower() if match else None


def parse_colon_price(text: str | None) -> tuple[Decimal, str | None] | None:
    """Parse colon notation: "50:-", "29:90", "149:-/kg"."""
    if not text:
        return None
    match = _COLON_PRICE_RE.search(text)
    if not match:
        return None
    fraction = match.group(2)
    value = _to_decimal(match.group(1), None if fraction == "-" else fraction)
    if value is None:
        return None
    unit = match.group(3).lower() if match.group(3) else None
    return value, unit


def price_candidates(text: str) -> list[Decimal]:
    """All plausible price tokens in ``text``.

    Comparison prices, deposits ("+pant 2 kr") and savings ("Spara 10 kr")
    are removed first.
    """
    stripped = text
    for pattern in (_COMPARISON_PRICE_RE, _DEPOSIT_RE, _SAVINGS_RE):
        stripped = pattern.sub(" ", stripped)
    values = []
    for match in _PRICE_TOKEN_RE.finditer(stripped):
        value = _to_decimal(match.group(1), match.group(2))
        if is_plausible_price(value):
            values.append(value)
    return values


def parse_price_info(text: str | None) -> PriceInfo | None:
    """Derive offer/original price, multi-buy and unit from a card's text.

    A multi-buy phrase wins over loose price tokens. Otherwise the lowest
    plausible token is taken as the discounted price and the highest as the
    original price; with more than two distinct tokens that pick is flagged
    as ambiguous.
    """
    if not text:
        return None
    unit = parse_unit(_COMPARISON_PRICE_RE.sub(" ", text))

    multi = parse_multi_buy(text)
    if multi and multi[0] > 1 and is_plausible_price(multi[1]):
        quantity, total = multi
        unit_price = per_unit(total, quantity)
        remainder = _MULTI_BUY_RE.sub(" ", text, count=1)
        higher = [c for c in price_candidates(remainder) if c > unit_price]
        return PriceInfo(
            offer_price=total,
            quantity=quantity,
            quantity_price=unit_price,
            unit=unit,
            original_price=max(higher) if higher else None,
        )

    candidates = price_candidates(text)
    if not candidates and multi and is_plausible_price(multi[1]):
        # "1 för 20 kr" is a plain price.
        candidates = [multi[1]]
    if not candidates:
        return None

    distinct = sorted(set(candidates))
    info = PriceInfo(offer_price=distinct[0], unit=unit)
    if len(distinct) > 1:
        info.original_price = distinct[-1]
    if len(distinct) > 2:
        info.ambiguous = True
        logger.debug("Ambiguous price candidates %s in %r", distinct, text[:120])
    return info


def parse_price_lines(lines: list[str]) -> PriceInfo | None:
    """Parse cards whose markup puts "2 FÖR" and the price on separate lines."""
    for index, line in enumerate(lines):
        match = _QUANTITY_ONLY_RE.match(line)
        if not match:
            continue
        quantity = int(match.group(1))
        for neighbour in (index + 1, index - 1):
            if not 0 <= neighbour < len(lines):
                continue
            total = parse_colon_price(lines[neighbour])
            value = total[0] if total else parse_decimal(lines[neighbour])
            if quantity > 1 and is_plausible_price(value):
                return PriceInfo(
                    offer_price=value,
                    quantity=quantity,
                    quantity_price=per_unit(value, quantity),
                    unit=parse_unit(" ".join(lines)),
                )
    return parse_price_info("\n".join(lines))


def parse_max_per_household(text: str | None) -> int | None:
    """Extract the purchase cap from "Max 2 köp", "max 3 st/hushåll"."""
    if not text:
        return None
    match = _MAX_PER_HOUSEHOLD_RE.search(text)
    return int(match.group(1)) if match else None


def requires_membership(text: str | None) -> bool:
    """True when the card advertises a loyalty-club price."""
    return bool(text and _MEMBERSHIP_RE.search(text))


def _normalise_image(candidate: str, base_url: str) -> str | None:
    value = candidate.strip()
    if not value:
        return None
    # srcset: "url1 320w, url2 640w" -> url1
    if "," in value and " " in value:
        value = value.split(",")[0].strip()
    value = value.split()[0]
    if value.startswith("data:"):
        return None
    if value.startswith("//"):
        value = f"https:{value}"
    elif not value.startswith("http"):
        if not base_url:
            return None
        value = urljoin(base_url, value)
    if any(marker in value.lower() for marker in _PLACEHOLDER_MARKERS):
        return None
    return value


def pick_image_url(
    candidates: list[str | None],
    preferred_domains: tuple[str, ...] = (),
    base_url: str = "",
) -> str | None:
    """Choose the best product image, preferring the chain's own CDN."""
    usable = []
    for candidate in candidates:
        if not candidate:
            continue
        url = _normalise_image(candidate, base_url)
        if url and url not in usable:
            usable.append(url)
    for url in usable:
        if any(domain in url for domain in preferred_domains):
            return url
    return usable[0] if usable else None
