"""API routes for chains, store search and offer scraping."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from smartamenyn.api.deps import build_scraper, get_scraper_factory
from smartamenyn.scrapers.types import CHAIN_CONFIGS, ChainConfig, OffersResult, Store, StoreSearchResult
from smartamenyn.services.sync import ScraperFactory

router = APIRouter(prefix="/chains", tags=["chains"])

logger = logging.getLogger(__name__)


class ChainListResponse(BaseModel):
    chains: list[ChainConfig]


@router.get("", response_model=ChainListResponse)
async def list_chains():
    return ChainListResponse(chains=list(CHAIN_CONFIGS.values()))


@router.get("/{chain}/stores", response_model=StoreSearchResult)
async def search_stores(
    chain: str,
    q: str = Query("", description="Store name, city or address"),
    scraper_factory: ScraperFactory = Depends(get_scraper_factory),
):
    scraper = build_scraper(chain, scraper_factory)
    async with scraper:
        result = await scraper.search_stores(q)

    if not result.success:
        raise HTTPException(status_code=500, detail=result.error)
    logger.info("%s store search %r: %d stores", chain, q, len(result.data.stores))
    return result.data


@router.post("/{chain}/offers", response_model=OffersResult)
async def get_offers(
    chain: str,
    store: Store,
    scraper_factory: ScraperFactory = Depends(get_scraper_factory),
):
    scraper = build_scraper(chain, scraper_factory)
    if store.chain != chain:
        await scraper.close()
        raise HTTPException(
            status_code=400,
            detail=f"Store belongs to {store.chain}, not {chain}",
        )

    async with scraper:
        result = await scraper.get_offers(store)

    if not result.success:
        raise HTTPException(status_code=500, detail=result.error)
    logger.info("%s offers for %s: %d", chain, store.id, len(result.data.offers))
    return result.data
