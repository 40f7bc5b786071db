"""
Single-platform spot-check scraper CLI.

Fetches one platform with an organization's configured filters, normalizes the
listings and prints them to the terminal. Does not write to the database by
default; --save reconciles the listings (without deactivating anything).

Usage:
    scrape --org acme --platform spitogatos
    scrape --org acme --platform xe_gr --pages 2
    scrape --org acme --platform tospitimou --save

Entrypoint: marketintel.scrape:main (registered as `scrape` in pyproject.toml)
"""

import argparse
import logging
import sys

from marketintel.config_store import get_org_config
from marketintel.db.session import get_db
from marketintel.errors import NormalizationError, format_error
from marketintel.normalizer import normalize
from marketintel.platforms.base import ScrapeFilters
from marketintel.platforms.fetcher import fetch_listings
from marketintel.platforms.registry import all_platform_ids, resolve_platform
from marketintel.reconciler import upsert_listing
from marketintel.scheduler.runner import OrgTarget


def _format_price(price: int | None) -> str:
    if not price:
        return "N/A"
    return f"€{price:,.0f}"


def _print_table(platform_name: str, listings: list[dict], errors: list[str], pages: int, saved: bool) -> None:
    """Print a formatted table of normalized listings."""
    print(f"\nPlatform:  {platform_name}")
    print(f"Pages:     {pages}")
    print(f"Listings found: {len(listings)}")

    if not listings:
        print("\n(No listings returned.)")
    else:
        rows = [
            (
                str(item["source_listing_id"]),
                _format_price(item.get("price")),
                f"{item['size_sqm']} m²" if item.get("size_sqm") else "",
                item.get("area") or "",
                (item.get("title") or "")[:40],
            )
            for item in listings
        ]
        headers = ("ID", "Price", "Size", "Area", "Title")
        widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

        header = "  ".join(f"{h:<{w}}" for h, w in zip(headers, widths))
        print(f"\n {header}")
        print(" " + "─" * len(header))
        for row in rows:
            print(" " + "  ".join(f"{v:<{w}}" for v, w in zip(row, widths)))

    if errors:
        print(f"\nErrors ({len(errors)}):")
        for err in errors:
            print(f"  {err}")

    print()
    if saved:
        print("(Saved to database.)")
    else:
        print("(Not saved to database. Run with --save to persist.)")


def main() -> None:
    """CLI entrypoint registered as `scrape` in pyproject.toml."""
    parser = argparse.ArgumentParser(
        description="Spot-check one platform for an organization by fetching and printing listings."
    )
    parser.add_argument("--org", required=True, metavar="ORG_ID", help="Organization id")
    parser.add_argument(
        "--platform",
        required=True,
        metavar="ID",
        help=f"Platform id ({', '.join(all_platform_ids())})",
    )
    parser.add_argument(
        "--pages",
        type=int,
        default=None,
        help="Max result pages to fetch (default: the org's configured limit, or 1)",
    )
    parser.add_argument(
        "--save",
        action="store_true",
        default=False,
        help="Reconcile listings into the database (default: dry-run, no DB write)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )

    platform = resolve_platform(args.platform)
    if platform is None:
        print(f"ERROR: Unknown platform \"{args.platform}\".")
        print(f"       Supported platforms: {', '.join(all_platform_ids())}")
        raise SystemExit(1)

    db_gen = get_db()
    db = next(db_gen)
    try:
        config = get_org_config(db, args.org)
        if config is not None:
            target = OrgTarget.from_config(config)
            filters, max_pages = target.filters, target.max_pages
        else:
            print(f"(No config for {args.org}; searching without filters.)")
            filters, max_pages = ScrapeFilters(), 1
        if args.pages is not None:
            max_pages = args.pages

        fetch = fetch_listings(platform, filters, max_pages)
        listings: list[dict] = []
        errors: list[str] = []
        for raw in fetch:
            try:
                listings.append(normalize(raw, platform.id, args.org))
            except NormalizationError as e:
                errors.append(format_error(e))
        if fetch.error:
            errors.append(fetch.error)

        if args.save:
            for listing in listings:
                upsert_listing(db, listing)
            db.commit()

        _print_table(platform.name, listings, errors, fetch.pages_scraped, saved=args.save)

    except SystemExit:
        raise
    except Exception as e:
        print(f"ERROR: {format_error(e)}")
        raise SystemExit(1)
    finally:
        try:
            next(db_gen)
        except StopIteration:
            pass


if __name__ == "__main__":
    main()
