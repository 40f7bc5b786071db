"""
Listing reconciler: merges normalized listings into the canonical store.

upsert_listing(): insert-or-update keyed by (organization_id, platform,
    source_listing_id), with price change detection and price history.
deactivate_stale_listings(): flags listings absent from the latest
    successful scrape as inactive. Rows are never deleted.

Both functions flush but do not commit. The platform runner wraps each
upsert in a SAVEPOINT and commits once at the end. With the default pysqlite
driver, releasing the outermost SAVEPOINT already makes that record durable,
so the runner's final rollback only discards the deactivation pass.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketintel.db.models import PlatformListing, PriceHistory, utcnow

logger = logging.getLogger("marketintel.reconciler")

# Columns refreshed from the latest sighting (last write wins)
ATTRIBUTE_FIELDS: tuple[str, ...] = (
    "source_url", "title", "description", "currency", "price_per_sqm",
    "property_type", "transaction_type", "address", "area", "municipality",
    "postal_code", "latitude", "longitude", "size_sqm", "bedrooms", "bathrooms",
    "floor", "year_built", "agency_name", "agency_phone", "images",
    "listing_date", "raw_data",
)


@dataclass(frozen=True)
class UpsertResult:
    is_new: bool
    price_changed: bool


def _find_listing(db: Session, organization_id: str, platform: str, source_listing_id: str) -> Optional[PlatformListing]:
    return db.execute(
        select(PlatformListing).where(
            PlatformListing.organization_id == organization_id,
            PlatformListing.platform == platform,
            PlatformListing.source_listing_id == source_listing_id,
        )
    ).scalar_one_or_none()


def _insert(db: Session, listing: dict[str, Any], now: datetime) -> PlatformListing:
    row = PlatformListing(
        organization_id=listing["organization_id"],
        platform=listing["platform"],
        source_listing_id=listing["source_listing_id"],
        price=listing.get("price"),
        is_active=True,
        first_seen_at=now,
        last_seen_at=now,
        **{f: listing.get(f) for f in ATTRIBUTE_FIELDS if listing.get(f) is not None},
    )
    db.add(row)
    db.flush()
    if row.price is not None:
        db.add(PriceHistory(
            listing_id=row.id,
            organization_id=row.organization_id,
            price=row.price,
            price_per_sqm=row.price_per_sqm,
            change_type="initial",
            recorded_at=now,
        ))
    return row


def _update(db: Session, row: PlatformListing, listing: dict[str, Any], now: datetime) -> bool:
    new_price = listing.get("price")
    price_changed = new_price is not None and new_price != row.price

    if price_changed:
        old_price = row.price
        row.previous_price = old_price
        row.price = new_price
        row.last_price_change_at = now
        db.add(PriceHistory(
            listing_id=row.id,
            organization_id=row.organization_id,
            price=new_price,
            price_per_sqm=listing.get("price_per_sqm"),
            change_type="increase" if old_price is None or new_price > old_price else "decrease",
            recorded_at=now,
        ))

    for field in ATTRIBUTE_FIELDS:
        if field not in listing:
            continue
        value = listing[field]
        # A missing price must not blank out price_per_sqm for a known price
        if field == "price_per_sqm" and value is None and new_price is None:
            continue
        if getattr(row, field) != value:
            setattr(row, field, value)

    row.last_seen_at = now
    row.is_active = True
    db.flush()
    return price_changed


def upsert_listing(db: Session, listing: dict[str, Any], now: Optional[datetime] = None) -> UpsertResult:
    """
    Insert or update one normalized listing.

    New key: inserted with first_seen_at/last_seen_at = now and an 'initial'
    price history row. Existing key: attributes refreshed, last_seen_at bumped,
    listing reactivated. A different non-null price stores the old one in
    previous_price, stamps last_price_change_at and records the change.

    The insert runs inside a SAVEPOINT. If a concurrent invocation inserted the
    same key first, the unique constraint fires, the savepoint is rolled back
    and the call falls through to the update path, so the key is written once.
    """
    now = now or utcnow()
    org_id = listing["organization_id"]
    platform = listing["platform"]
    source_id = listing["source_listing_id"]

    row = _find_listing(db, org_id, platform, source_id)
    if row is None:
        try:
            with db.begin_nested():
                _insert(db, listing, now)
            return UpsertResult(is_new=True, price_changed=False)
        except IntegrityError:
            logger.info(f"Concurrent insert for {platform}/{source_id} ({org_id}); updating instead")
            row = _find_listing(db, org_id, platform, source_id)
            if row is None:
                raise

    price_changed = _update(db, row, listing, now)
    return UpsertResult(is_new=False, price_changed=price_changed)


def deactivate_stale_listings(
    db: Session,
    organization_id: str,
    platform: str,
    seen_source_ids: Iterable[str],
) -> int:
    """
    Mark inactive every active listing for (organization_id, platform) whose
    source id is not in seen_source_ids. Returns the number deactivated.

    An empty seen set is a no-op: a scrape that parsed nothing looks the same
    as a broken parser, and must not wipe the active set.
    """
    seen = {str(s) for s in seen_source_ids}
    if not seen:
        return 0

    result = db.execute(
        update(PlatformListing)
        .where(
            PlatformListing.organization_id == organization_id,
            PlatformListing.platform == platform,
            PlatformListing.is_active.is_(True),
            PlatformListing.source_listing_id.notin_(seen),
        )
        .values(is_active=False)
        .execution_options(synchronize_session="fetch")
    )
    db.flush()
    count = result.rowcount or 0
    if count:
        logger.info(f"Deactivated {count} stale {platform} listings for {organization_id}")
    return count
