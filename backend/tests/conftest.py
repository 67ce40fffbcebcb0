"""Pytest fixtures for SmartaMenyn scraper tests."""

import os

# Settings are cached on first use, so the environment must be ready first.
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"
TEST_SYNC_API_KEY = "test-sync-key"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["SYNC_API_KEY"] = TEST_SYNC_API_KEY
os.environ["SCHEDULER_ENABLED"] = "false"

from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from smartamenyn.api.deps import get_scraper_factory, get_session_factory
from smartamenyn.database import Base
from smartamenyn.main import app
from smartamenyn.scrapers import BaseScraper, UnknownChainError, is_supported_chain
from smartamenyn.scrapers.base import filter_stores_by_query
from smartamenyn.scrapers.types import (
    CHAIN_CONFIGS,
    OffersResult,
    Store,
    StoreSearchResult,
    ValidationResult,
)
from smartamenyn.services.stores import upsert_stores

engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
test_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Fake scrapers
# ---------------------------------------------------------------------------


def offer_card(name: str, price: str, **fields: Any) -> dict[str, Any]:
    """A card dict shaped like the output of ``BaseScraper._collect_cards``."""
    text = " ".join([name, price, *[str(v) for v in fields.values()]])
    return {
        "text": text,
        "lines": [name, price],
        "fields": {"name": name, "price": price, **fields},
        "images": [],
        "link": None,
    }


class FakeScraper(BaseScraper):
    """Scraper that serves canned stores and offer cards without a browser."""

    def __init__(
        self,
        chain: str = "ica",
        stores: list[Store] | None = None,
        cards: list[dict[str, Any]] | None = None,
        error: str | None = None,
        valid: bool = True,
    ) -> None:
        super().__init__()
        config = CHAIN_CONFIGS[chain]
        self.chain_id = config.id
        self.chain_name = config.name
        self.base_url = config.base_url
        self.stores = stores or []
        self.cards = cards or []
        self.error = error
        self.valid = valid
        self.closed = False

    async def _search_stores(self, query: str) -> StoreSearchResult:
        if self.error:
            raise RuntimeError(self.error)
        stores = filter_stores_by_query(self.stores, query)
        return StoreSearchResult(stores=stores, query=query, total_count=len(stores))

    async def _get_offers(self, store: Store) -> OffersResult:
        if self.error:
            raise RuntimeError(self.error)
        return OffersResult(offers=self._offers_from_cards(store, self.cards), store=store)

    async def validate(self) -> ValidationResult:
        message = "fake ok" if self.valid else "fake page changed"
        return ValidationResult(chain=self.chain_id, valid=self.valid, message=message)

    async def close(self) -> None:
        self.closed = True
        await super().close()


class FakeScraperFactory:
    """Drop-in for ``create_scraper`` with per-chain canned behaviour."""

    def __init__(self) -> None:
        self.configs: dict[str, dict[str, Any]] = {}
        self.created: list[FakeScraper] = []

    def configure(self, chain: str, **kwargs: Any) -> None:
        self.configs[chain] = kwargs

    def __call__(self, chain: str) -> FakeScraper:
        if not is_supported_chain(chain):
            raise UnknownChainError(chain)
        scraper = FakeScraper(chain, **self.configs.get(chain, {}))
        self.created.append(scraper)
        return scraper


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def setup_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db(setup_db):
    async with test_session() as session:
        yield session


@pytest.fixture
def scraper_factory() -> FakeScraperFactory:
    return FakeScraperFactory()


@pytest_asyncio.fixture
async def client(setup_db, scraper_factory: FakeScraperFactory):
    app.dependency_overrides[get_scraper_factory] = lambda: scraper_factory
    app.dependency_overrides[get_session_factory] = lambda: test_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def sample_stores() -> list[Store]:
    return [
        Store(
            id="ica-1004096",
            name="ICA Maxi Stormarknad Lindhagen",
            address="Lindhagensgatan 118, 112 51 Stockholm",
            city="Stockholm",
            chain="ica",
            external_id="1004096",
            profile="Maxi",
        ),
        Store(
            id="coop-coop-kungsholmen",
            name="Coop Kungsholmen",
            city="Stockholm",
            chain="coop",
            external_id="coop-kungsholmen",
            profile="coop",
        ),
    ]


@pytest_asyncio.fixture
async def saved_stores(db: AsyncSession, sample_stores: list[Store]) -> list[Store]:
    async with db.begin():
        await upsert_stores(db, sample_stores)
    return sample_stores
