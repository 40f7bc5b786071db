"""Per-platform scrape run with error isolation and deactivate-only-on-success."""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketintel.db.models import OrgScrapeConfig
from marketintel.errors import NormalizationError, UnknownPlatformError, format_error
from marketintel.normalizer import normalize
from marketintel.platforms.base import ScrapeFilters
from marketintel.platforms.fetcher import fetch_listings
from marketintel.platforms.registry import resolve_platform
from marketintel.reconciler import deactivate_stale_listings, upsert_listing
from marketintel.scrape_log import ScrapeLogRecorder

logger = logging.getLogger("marketintel.scheduler")


@dataclass(frozen=True)
class OrgTarget:
    """Detached snapshot of an organization's scrape config."""
    organization_id: str
    platforms: tuple[str, ...]
    filters: ScrapeFilters
    max_pages: int

    @classmethod
    def from_config(cls, config: OrgScrapeConfig) -> "OrgTarget":
        return cls(
            organization_id=config.organization_id,
            platforms=tuple(config.platforms or ()),
            filters=ScrapeFilters(
                areas=tuple(config.target_areas or ()),
                municipalities=tuple(config.target_municipalities or ()),
                min_price=config.min_price,
                max_price=config.max_price,
                property_types=tuple(config.property_types or ()),
                transaction_types=tuple(config.transaction_types or ()),
            ),
            max_pages=config.max_pages_per_platform,
        )


@dataclass
class PlatformResult:
    platform: str
    status: str = "failed"
    listings_found: int = 0
    listings_new: int = 0
    listings_updated: int = 0
    listings_deactivated: int = 0
    pages_scraped: int = 0
    duration_ms: int = 0
    errors: list[str] = field(default_factory=list)


class _LogProgress:
    """Pushes counter deltas to the scrape log as pages complete."""

    def __init__(self, recorder: ScrapeLogRecorder, log_id: Optional[int], result: PlatformResult):
        self._recorder = recorder
        self._log_id = log_id
        self._result = result
        self._pushed = {"listings_found": 0, "listings_new": 0, "listings_updated": 0, "pages_scraped": 0}

    def push(self) -> None:
        delta = {}
        for name, pushed in self._pushed.items():
            current = getattr(self._result, name)
            if current != pushed:
                delta[name] = current - pushed
                self._pushed[name] = current
        if delta:
            self._recorder.update_log(self._log_id, **delta)


def scrape_platform(
    db: Session,
    target: OrgTarget,
    platform_id: str,
    *,
    recorder: ScrapeLogRecorder,
    client: Optional[httpx.Client] = None,
    sleep: Callable[[float], None] = time.sleep,
    now: Optional[datetime] = None,
) -> PlatformResult:
    """
    Scrape one platform for one organization and reconcile the results.

    Never raises. Status rules:
      failed  - unknown platform, or the fetch broke before any listing came through
      partial - the fetch broke after some listings were processed
      success - the fetch ran to completion; per-record errors are listed only

    Stale listings are deactivated only on success. Each record is written in
    its own SAVEPOINT so a store error discards that record alone.
    """
    started = time.monotonic()
    org_id = target.organization_id
    result = PlatformResult(platform=platform_id)

    platform = resolve_platform(platform_id)
    if platform is None:
        result.errors.append(format_error(UnknownPlatformError(platform_id)))
        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.warning(f"FAIL {org_id}/{platform_id}: unknown platform")
        return result

    log_id = recorder.open_log(org_id, platform_id)
    progress = _LogProgress(recorder, log_id, result)
    fetch = fetch_listings(platform, target.filters, target.max_pages, client=client, sleep=sleep)
    seen_ids: set[str] = set()
    crash: Optional[str] = None

    try:
        pages_seen = 0
        for raw in fetch:
            if fetch.pages_scraped != pages_seen:
                pages_seen = fetch.pages_scraped
                result.pages_scraped = pages_seen
                progress.push()

            result.listings_found += 1
            try:
                listing = normalize(raw, platform_id, org_id)
            except NormalizationError as e:
                result.errors.append(format_error(e))
                continue

            # Observed even if the write fails, so it is not deactivated below
            seen_ids.add(listing["source_listing_id"])
            try:
                with db.begin_nested():
                    outcome = upsert_listing(db, listing, now=now)
            except SQLAlchemyError as e:
                result.errors.append(format_error(e))
                continue

            if outcome.is_new:
                result.listings_new += 1
            elif outcome.price_changed:
                result.listings_updated += 1
    except Exception as e:
        crash = format_error(e)
        result.errors.append(crash)
        logger.warning(f"{org_id}/{platform_id}: scrape aborted: {crash}")

    result.pages_scraped = fetch.pages_scraped
    if fetch.error:
        result.errors.append(fetch.error)

    if fetch.failed or crash:
        result.status = "partial" if result.listings_found > 0 else "failed"
    else:
        result.status = "success"

    try:
        if result.status == "success":
            result.listings_deactivated = deactivate_stale_listings(db, org_id, platform_id, seen_ids)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        result.errors.append(format_error(e))
        result.status = "failed"
        result.listings_deactivated = 0

    progress.push()
    if result.listings_deactivated:
        recorder.update_log(log_id, listings_deactivated=result.listings_deactivated)
    result.duration_ms = int((time.monotonic() - started) * 1000)
    recorder.close_log(log_id, result.status, result.errors, result.duration_ms)

    summary = (
        f"{org_id}/{platform_id}: {result.listings_found} found, {result.listings_new} new, "
        f"{result.listings_updated} updated, {result.listings_deactivated} deactivated, "
        f"{result.pages_scraped} pages"
    )
    if result.status == "success":
        logger.info(f"OK   {summary}")
    elif result.status == "partial":
        logger.warning(f"PARTIAL {summary}: {result.errors[-1]}")
    else:
        logger.warning(f"FAIL {summary}: {result.errors[-1] if result.errors else 'no listings'}")
    return result
