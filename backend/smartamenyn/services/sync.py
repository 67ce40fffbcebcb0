"""Offer sync: scrape a store and swap its offers in one transaction.

For each store the old offers are deleted and the new batch inserted in the
same transaction as the ``last_synced_at`` update. Any failure rolls the
whole swap back, so a store keeps its previous offers rather than ending up
empty. Stores are processed one at a time and a failing store never stops
the rest of the batch.
"""

import logging
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from smartamenyn.config import get_settings
from smartamenyn.database import async_session
from smartamenyn.models import Offer as OfferRow
from smartamenyn.models import ScrapeJob
from smartamenyn.models import Store as StoreRow
from smartamenyn.scrapers import BaseScraper, create_scraper
from smartamenyn.scrapers.types import CamelModel, Offer, Store
from smartamenyn.services.stores import load_stores, store_to_domain

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]
ScraperFactory = Callable[[str], BaseScraper]


class SyncError(RuntimeError):
    """A store could not be synced."""


class StoreSyncResult(CamelModel):
    store_id: str
    store_name: str
    chain: str
    success: bool
    offers_count: int = 0
    duration_ms: int = 0
    error: str | None = None


class SyncReport(CamelModel):
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    total_offers: int = 0
    results: list[StoreSyncResult] = []


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


async def filter_due(
    session: AsyncSession,
    stores: list[StoreRow],
    cooldown_hours: int,
    now: datetime | None = None,
) -> list[StoreRow]:
    """Drop stores synced within the cooldown that still hold offers.

    A store synced recently but left without offers is retried.
    """
    if not stores:
        return []
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=cooldown_hours)
    result = await session.execute(
        select(OfferRow.store_id, func.count(OfferRow.id))
        .where(OfferRow.store_id.in_([s.id for s in stores]))
        .group_by(OfferRow.store_id)
    )
    offer_counts = dict(result.all())

    due = []
    for store in stores:
        fresh = store.last_synced_at is not None and _as_utc(store.last_synced_at) >= cutoff
        if fresh and offer_counts.get(store.id, 0) > 0:
            logger.info("Skipping %s: synced %s", store.id, store.last_synced_at)
            continue
        due.append(store)
    return due


async def stores_due_for_sync(
    session: AsyncSession,
    store_ids: list[str] | None = None,
    cooldown_hours: int | None = None,
) -> list[Store]:
    """Stores that need a refresh under the cooldown policy."""
    if cooldown_hours is None:
        cooldown_hours = get_settings().sync_cooldown_hours
    rows = await load_stores(session, store_ids)
    due = await filter_due(session, rows, cooldown_hours)
    return [store_to_domain(row) for row in due]


class OfferSyncService:
    """Runs scrape + transactional offer swap per store."""

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        scraper_factory: ScraperFactory = create_scraper,
    ) -> None:
        self._session_factory = session_factory or async_session
        self._scraper_factory = scraper_factory

    # ------------------------------------------------------------------
    # Single store
    # ------------------------------------------------------------------

    async def sync_store(self, store: Store) -> StoreSyncResult:
        """Scrape ``store`` and replace its offers; raises on any failure."""
        started = time.perf_counter()
        job_id = await self._start_job(store.id)
        try:
            offers = await self._scrape(store)
            async with self._session_factory() as session:
                async with session.begin():
                    await self._replace_offers(session, store.id, offers)
                    await session.execute(
                        update(StoreRow)
                        .where(StoreRow.id == store.id)
                        .values(last_synced_at=datetime.now(timezone.utc))
                    )
        except Exception as exc:
            await self._finish_job(job_id, "failed", started, error=str(exc) or repr(exc))
            raise

        duration_ms = await self._finish_job(job_id, "completed", started, offers_count=len(offers))
        return StoreSyncResult(
            store_id=store.id,
            store_name=store.name,
            chain=store.chain,
            success=True,
            offers_count=len(offers),
            duration_ms=duration_ms,
        )

    async def _scrape(self, store: Store) -> list[Offer]:
        async with self._scraper_factory(store.chain) as scraper:
            result = await scraper.get_offers(store)
        if not result.success or result.data is None:
            raise SyncError(result.error or "Scraping returned no data")
        return result.data.offers

    async def _replace_offers(self, session: AsyncSession, store_id: str, offers: list[Offer]) -> None:
        await session.execute(delete(OfferRow).where(OfferRow.store_id == store_id))
        await self._insert_offers(session, offers)

    async def _insert_offers(self, session: AsyncSession, offers: list[Offer]) -> None:
        session.add_all(
            OfferRow(
                id=offer.id,
                store_id=offer.store_id,
                chain_id=offer.chain,
                name=offer.name,
                brand=offer.brand,
                description=offer.description,
                original_price=offer.original_price,
                offer_price=offer.offer_price,
                quantity=offer.quantity,
                quantity_price=offer.quantity_price,
                unit=offer.unit,
                savings=offer.savings,
                image_url=offer.image_url,
                offer_url=offer.offer_url,
                category=offer.category,
                max_per_household=offer.max_per_household,
                requires_membership=offer.requires_membership,
                scraped_at=offer.scraped_at,
            )
            for offer in offers
        )
        await session.flush()

    # ------------------------------------------------------------------
    # Audit trail (outside the swap transaction)
    # ------------------------------------------------------------------

    async def _start_job(self, store_id: str) -> uuid.UUID | None:
        """Record a running job; None when the audit row could not be written."""
        job_id = uuid.uuid4()
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(ScrapeJob(id=job_id, store_id=store_id, status="running"))
        except Exception:
            logger.exception("Could not record scrape job for %s", store_id)
            return None
        return job_id

    async def _finish_job(
        self,
        job_id: uuid.UUID | None,
        status: str,
        started: float,
        offers_count: int | None = None,
        error: str | None = None,
    ) -> int:
        """Close the audit row. A failed write is logged and never masks the sync outcome."""
        duration_ms = int((time.perf_counter() - started) * 1000)
        if job_id is None:
            return duration_ms
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        update(ScrapeJob)
                        .where(ScrapeJob.id == job_id)
                        .values(
                            status=status,
                            offers_count=offers_count,
                            duration_ms=duration_ms,
                            error=error,
                            completed_at=datetime.now(timezone.utc),
                        )
                    )
        except Exception:
            logger.exception("Could not update scrape job %s to %s", job_id, status)
        return duration_ms

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def sync_stores(self, stores: list[Store]) -> SyncReport:
        """Sync stores sequentially; one store's failure never stops the rest."""
        report = SyncReport()
        for store in stores:
            try:
                result = await self.sync_store(store)
            except Exception as exc:
                logger.exception("Sync failed for %s (%s)", store.name, store.chain)
                report.failed += 1
                report.results.append(
                    StoreSyncResult(
                        store_id=store.id,
                        store_name=store.name,
                        chain=store.chain,
                        success=False,
                        error=str(exc) or repr(exc),
                    )
                )
                continue
            report.synced += 1
            report.total_offers += result.offers_count
            report.results.append(result)
            logger.info("Synced %s (%s): %d offers", store.name, store.chain, result.offers_count)
        return report

    async def run_full_sync(
        self, store_ids: list[str] | None = None, force: bool = False
    ) -> SyncReport:
        """Sync every enabled store (or ``store_ids``), honouring the cooldown unless forced."""
        started = time.perf_counter()
        async with self._session_factory() as session:
            candidates = await load_stores(session, store_ids)
            if force:
                due = candidates
            else:
                due = await filter_due(session, candidates, get_settings().sync_cooldown_hours)
            stores = [store_to_domain(row) for row in due]

        logger.info("Sync starting: %d of %d stores due", len(stores), len(candidates))
        report = await self.sync_stores(stores)
        report.skipped = len(candidates) - len(stores)
        logger.info(
            "Sync done in %.1fs: %d synced, %d failed, %d skipped, %d offers",
            time.perf_counter() - started,
            report.synced,
            report.failed,
            report.skipped,
            report.total_offers,
        )
        return report


async def run_full_sync(store_ids: list[str] | None = None, force: bool = False) -> SyncReport:
    """Sync with the default database session and scrapers."""
    return await OfferSyncService().run_full_sync(store_ids=store_ids, force=force)
