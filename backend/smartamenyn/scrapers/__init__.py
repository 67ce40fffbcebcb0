"""SmartaMenyn scraping engine.

Exposes all chain scrapers and the factory used by the API, CLI and sync.
"""

from smartamenyn.scrapers.base import BaseScraper, UnknownChainError
from smartamenyn.scrapers.coop import CoopScraper
from smartamenyn.scrapers.hemkop import HemkopScraper
from smartamenyn.scrapers.ica import IcaScraper
from smartamenyn.scrapers.lidl import LidlScraper

__all__ = [
    "BaseScraper",
    "CoopScraper",
    "HemkopScraper",
    "IcaScraper",
    "LidlScraper",
    "SCRAPER_REGISTRY",
    "UnknownChainError",
    "create_scraper",
    "get_supported_chains",
    "is_supported_chain",
]

# Registry mapping chain ids to their scraper classes.
SCRAPER_REGISTRY: dict[str, type[BaseScraper]] = {
    "ica": IcaScraper,
    "hemkop": HemkopScraper,
    "coop": CoopScraper,
    "lidl": LidlScraper,
}


def get_supported_chains() -> list[str]:
    return list(SCRAPER_REGISTRY)


def is_supported_chain(chain: str) -> bool:
    return chain in SCRAPER_REGISTRY


def create_scraper(chain: str) -> BaseScraper:
    """Return a fresh scraper for ``chain``; raises :class:`UnknownChainError`."""
    try:
        scraper_cls = SCRAPER_REGISTRY[chain]
    except KeyError:
        raise UnknownChainError(chain) from None
    return scraper_cls()
