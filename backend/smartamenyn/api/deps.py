"""Shared FastAPI dependencies."""

from fastapi import HTTPException

from smartamenyn.database import async_session
from smartamenyn.scrapers import BaseScraper, UnknownChainError, create_scraper
from smartamenyn.services.sync import ScraperFactory, SessionFactory


def get_scraper_factory() -> ScraperFactory:
    """Factory used to build chain scrapers; overridden in tests."""
    return create_scraper


def get_session_factory() -> SessionFactory:
    return async_session


def build_scraper(chain: str, factory: ScraperFactory) -> BaseScraper:
    """Create a scraper for ``chain`` or answer 400."""
    try:
        return factory(chain)
    except UnknownChainError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
