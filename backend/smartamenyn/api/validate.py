"""Scraper self-check routes."""

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from smartamenyn.api.deps import build_scraper, get_scraper_factory
from smartamenyn.scrapers import get_supported_chains
from smartamenyn.scrapers.types import ValidationResult
from smartamenyn.services.sync import ScraperFactory

router = APIRouter(prefix="/validate", tags=["validate"])


class ValidationReport(BaseModel):
    valid: bool
    results: list[ValidationResult]


def _respond(body: BaseModel, valid: bool) -> JSONResponse:
    return JSONResponse(
        status_code=200 if valid else 500,
        content=jsonable_encoder(body, by_alias=True),
    )


@router.get("", response_model=ValidationReport)
async def validate_all(scraper_factory: ScraperFactory = Depends(get_scraper_factory)):
    """Validate every chain; 500 when any of them fails."""
    results = []
    for chain in get_supported_chains():
        async with scraper_factory(chain) as scraper:
            results.append(await scraper.validate())
    report = ValidationReport(valid=all(r.valid for r in results), results=results)
    return _respond(report, report.valid)


@router.get("/{chain}", response_model=ValidationResult)
async def validate_chain(
    chain: str, scraper_factory: ScraperFactory = Depends(get_scraper_factory)
):
    scraper = build_scraper(chain, scraper_factory)
    async with scraper:
        result = await scraper.validate()
    return _respond(result, result.valid)
