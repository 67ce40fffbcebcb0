"""Store and chain persistence helpers."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from smartamenyn.models import Chain
from smartamenyn.models import Store as StoreRow
from smartamenyn.scrapers.types import CHAIN_CONFIGS, Store

logger = logging.getLogger(__name__)

# Columns refreshed when a known store shows up in a new search.
_REFRESHABLE = ("address", "city", "profile", "offers_url")


def store_to_domain(row: StoreRow) -> Store:
    return Store(
        id=row.id,
        name=row.name,
        address=row.address,
        city=row.city,
        chain=row.chain_id,
        external_id=row.external_id,
        profile=row.profile,
        offers_url=row.offers_url,
    )


async def ensure_chains(session: AsyncSession) -> int:
    """Insert any configured chain missing from the ``chains`` table."""
    result = await session.execute(select(Chain.id))
    existing = set(result.scalars().all())
    created = 0
    for config in CHAIN_CONFIGS.values():
        if config.id in existing:
            continue
        session.add(Chain(id=config.id, name=config.name, base_url=config.base_url))
        created += 1
    if created:
        await session.flush()
        logger.info("Created %d chain rows", created)
    return created


async def upsert_stores(session: AsyncSession, stores: list[Store]) -> tuple[int, int]:
    """Insert new stores and refresh address/profile of known ones.

    Returns ``(created, updated)``. Names, ids and sync flags of existing
    stores are left alone.
    """
    if not stores:
        return 0, 0

    await ensure_chains(session)
    ids = [store.id for store in stores]
    result = await session.execute(select(StoreRow).where(StoreRow.id.in_(ids)))
    existing = {row.id: row for row in result.scalars().all()}

    created = updated = 0
    for store in stores:
        row = existing.get(store.id)
        if row is None:
            session.add(
                StoreRow(
                    id=store.id,
                    chain_id=store.chain,
                    external_id=store.external_id,
                    name=store.name,
                    address=store.address,
                    city=store.city,
                    profile=store.profile,
                    offers_url=store.offers_url,
                )
            )
            existing[store.id] = store
            created += 1
            continue

        if not isinstance(row, StoreRow):
            # Duplicate within this batch.
            continue
        changed = False
        for column in _REFRESHABLE:
            value = getattr(store, column)
            if value and getattr(row, column) != value:
                setattr(row, column, value)
                changed = True
        if changed:
            updated += 1

    await session.flush()
    logger.info("Stores upserted: %d created, %d updated", created, updated)
    return created, updated


async def load_stores(
    session: AsyncSession, store_ids: list[str] | None = None
) -> list[StoreRow]:
    """Stores to sync: the given ids, or every store with sync enabled."""
    stmt = select(StoreRow).order_by(StoreRow.chain_id, StoreRow.name)
    if store_ids:
        stmt = stmt.where(StoreRow.id.in_(store_ids))
    else:
        stmt = stmt.where(StoreRow.sync_enabled.is_(True))
    result = await session.execute(stmt)
    return list(result.scalars().all())
