"""Trigger an offer sync over HTTP (used by external cron)."""

import logging
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import Field

from smartamenyn.api.deps import get_scraper_factory, get_session_factory
from smartamenyn.config import Settings, get_settings
from smartamenyn.scrapers.types import CamelModel
from smartamenyn.services.sync import OfferSyncService, ScraperFactory, SessionFactory, SyncReport

router = APIRouter(prefix="/sync", tags=["sync"])

logger = logging.getLogger(__name__)


class SyncRequest(CamelModel):
    store_ids: list[str] | None = Field(default=None)
    force: bool = False


def require_api_key(
    x_api_key: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.sync_api_key:
        raise HTTPException(status_code=503, detail="Sync endpoint is not configured")
    if not x_api_key or not secrets.compare_digest(x_api_key, settings.sync_api_key):
        raise HTTPException(status_code=401, detail="Invalid API key")


@router.post("", response_model=SyncReport, dependencies=[Depends(require_api_key)])
async def trigger_sync(
    data: SyncRequest | None = None,
    session_factory: SessionFactory = Depends(get_session_factory),
    scraper_factory: ScraperFactory = Depends(get_scraper_factory),
):
    data = data or SyncRequest()
    service = OfferSyncService(session_factory=session_factory, scraper_factory=scraper_factory)
    report = await service.run_full_sync(store_ids=data.store_ids, force=data.force)
    logger.info("HTTP sync: %d synced, %d failed", report.synced, report.failed)
    return report
