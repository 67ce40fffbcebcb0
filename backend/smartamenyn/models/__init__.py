"""SQLAlchemy models."""

from smartamenyn.models.chain import Chain
from smartamenyn.models.offer import Offer
from smartamenyn.models.scrape_job import ScrapeJob
from smartamenyn.models.store import Store

__all__ = [
    "Chain",
    "Offer",
    "ScrapeJob",
    "Store",
]
