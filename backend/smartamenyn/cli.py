"""Command line front end for the chain scrapers.

Examples::

    smartamenyn stores ica stockholm
    smartamenyn stores coop "Coop Forum" --save
    smartamenyn offers hemkop 4147
    smartamenyn validate
    smartamenyn sync --force
"""

import argparse
import asyncio
import logging
import sys

from smartamenyn.config import ConfigurationError, get_settings, require_database_url
from smartamenyn.database import async_session
from smartamenyn.scrapers import create_scraper, get_supported_chains, is_supported_chain
from smartamenyn.scrapers.types import Store
from smartamenyn.services.stores import upsert_stores
from smartamenyn.services.sync import OfferSyncService

logger = logging.getLogger(__name__)

DEFAULT_OFFER_LIMIT = 20


def build_parser() -> argparse.ArgumentParser:
    chains = ", ".join(get_supported_chains())
    parser = argparse.ArgumentParser(
        prog="smartamenyn",
        description="SmartaMenyn scraper CLI",
        epilog=f"Supported chains: {chains}",
    )
    sub = parser.add_subparsers(dest="command")

    stores = sub.add_parser("stores", help="Search for stores")
    stores.add_argument("chain")
    stores.add_argument("query", nargs="+")
    stores.add_argument("--save", action="store_true", help="Upsert the stores into the database")

    offers = sub.add_parser("offers", help="Get offers for a store")
    offers.add_argument("chain")
    offers.add_argument("store_id", metavar="storeId")
    offers.add_argument("--limit", type=int, default=DEFAULT_OFFER_LIMIT, help="Offers to print")

    validate = sub.add_parser("validate", help="Validate scrapers")
    validate.add_argument("chain", nargs="?")

    sub.add_parser("chains", help="List supported chains")

    sync = sub.add_parser("sync", help="Sync offers into the database")
    sync.add_argument("store_ids", nargs="*", metavar="storeId")
    sync.add_argument("--force", action="store_true", help="Ignore the sync cooldown")

    sub.add_parser("help", help="Show this help")
    return parser


def _check_chain(chain: str) -> bool:
    if is_supported_chain(chain):
        return True
    print(
        f"Invalid chain '{chain}'. Supported: {', '.join(get_supported_chains())}",
        file=sys.stderr,
    )
    return False


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_stores(chain: str, query: str, save: bool = False) -> int:
    print(f'Searching {chain} stores matching "{query}"...\n')
    async with create_scraper(chain) as scraper:
        result = await scraper.search_stores(query)

    if not result.success:
        print(f"Failed: {result.error}", file=sys.stderr)
        return 1

    stores = result.data.stores
    print(f"Found {len(stores)} stores:\n")
    for store in stores:
        print(f"  {store.name}")
        print(f"     ID: {store.external_id}")
        if store.address:
            print(f"     {store.address}")
        if store.profile:
            print(f"     Profile: {store.profile}")
    print(f"\nDuration: {result.duration_ms}ms")

    if save:
        require_database_url()
        async with async_session() as session:
            async with session.begin():
                created, updated = await upsert_stores(session, stores)
        print(f"Saved: {created} new, {updated} updated")
    return 0


async def cmd_offers(chain: str, store_id: str, limit: int = DEFAULT_OFFER_LIMIT) -> int:
    store = Store(
        id=f"{chain}-{store_id}",
        name=f"Store {store_id}",
        chain=chain,
        external_id=store_id,
    )
    print(f"Getting offers for store {store_id}...\n")
    async with create_scraper(chain) as scraper:
        result = await scraper.get_offers(store)

    if not result.success:
        print(f"Failed: {result.error}", file=sys.stderr)
        return 1

    offers = result.data.offers
    print(f"Found {len(offers)} offers:\n")
    for offer in offers[:limit]:
        print(f"  {offer.name}")
        if offer.brand:
            print(f"     Brand: {offer.brand}")
        if offer.quantity and offer.quantity > 1:
            print(f"     Price: {offer.quantity} för {offer.offer_price} kr")
        else:
            unit = f"/{offer.unit}" if offer.unit else ""
            print(f"     Price: {offer.offer_price} kr{unit}")
        if offer.original_price:
            print(f"     Was: {offer.original_price} kr")
        if offer.savings:
            print(f"     Save: {offer.savings}")
        if offer.requires_membership:
            print("     Members only")
    if len(offers) > limit:
        print(f"  ... and {len(offers) - limit} more")
    print(f"\nDuration: {result.duration_ms}ms")
    return 0


async def cmd_validate(chain: str | None = None) -> int:
    chains = [chain] if chain else get_supported_chains()
    all_valid = True
    for name in chains:
        async with create_scraper(name) as scraper:
            result = await scraper.validate()
        mark = "OK  " if result.valid else "FAIL"
        print(f"{mark} {result.chain}: {result.message}")
        all_valid = all_valid and result.valid
    return 0 if all_valid else 1


async def cmd_sync(store_ids: list[str], force: bool = False) -> int:
    require_database_url()
    service = OfferSyncService(session_factory=async_session, scraper_factory=create_scraper)
    report = await service.run_full_sync(store_ids=store_ids or None, force=force)

    for result in report.results:
        if result.success:
            print(f"OK   {result.store_name} ({result.chain}): {result.offers_count} offers")
        else:
            print(f"FAIL {result.store_name} ({result.chain}): {result.error}")
    print(
        f"\n{report.synced} synced, {report.failed} failed, "
        f"{report.skipped} skipped, {report.total_offers} offers"
    )
    return 0 if report.failed == 0 else 1


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(levelname)s: %(message)s",
    )

    if args.command in (None, "help"):
        parser.print_help()
        return 0

    if args.command == "chains":
        print("Supported chains:", ", ".join(get_supported_chains()))
        return 0

    chain = getattr(args, "chain", None)
    if chain is not None and not _check_chain(chain):
        return 1

    try:
        if args.command == "stores":
            return asyncio.run(cmd_stores(chain, " ".join(args.query), save=args.save))
        if args.command == "offers":
            return asyncio.run(cmd_offers(chain, args.store_id, limit=args.limit))
        if args.command == "validate":
            return asyncio.run(cmd_validate(chain))
        if args.command == "sync":
            return asyncio.run(cmd_sync(args.store_ids, force=args.force))
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    except Exception:
        logger.exception("Command '%s' failed", args.command)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
