"""
Scrape cycle orchestrator: due configs -> per org -> per platform -> bookkeeping.

One invocation processes organizations and their platforms sequentially until
the wall-clock budget runs out. The budget is checked before starting each
organization and each platform; in-flight work is never interrupted.
Organizations left over keep their next_scrape_due and are picked up by the
next invocation.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

import httpx
from sqlalchemy.orm import Session

from marketintel.config_store import (
    check_schema_exists,
    get_configs_due_for_scraping,
    update_org_config_after_scrape,
)
from marketintel.db.session import SessionLocal
from marketintel.errors import SchemaMissingError
from marketintel.platforms.fetcher import new_client
from marketintel.scheduler.runner import OrgTarget, PlatformResult, scrape_platform
from marketintel.scrape_log import ScrapeLogRecorder

logger = logging.getLogger("marketintel.scheduler")

DEFAULT_BUDGET_SECONDS = 55.0


@dataclass(frozen=True)
class CycleOptions:
    enabled: bool = True
    budget_seconds: float = DEFAULT_BUDGET_SECONDS


class Deadline:
    """Wall-clock budget measured from construction."""

    def __init__(self, budget_seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._budget = budget_seconds
        self._started = clock()

    def elapsed(self) -> float:
        return self._clock() - self._started

    def remaining(self) -> float:
        return max(0.0, self._budget - self.elapsed())

    def expired(self) -> bool:
        return self.elapsed() >= self._budget


@dataclass
class OrgResult:
    organization_id: str
    platforms: list[PlatformResult] = field(default_factory=list)
    success: bool = False


@dataclass
class CycleResult:
    processed: int = 0
    successful_orgs: int = 0
    total_listings: int = 0
    duration_ms: int = 0
    results: list[OrgResult] = field(default_factory=list)
    stopped_early: bool = False
    message: str = ""


def run_organization(
    target: OrgTarget,
    deadline: Deadline,
    *,
    session_factory: Callable[[], Session],
    client: httpx.Client,
    recorder: ScrapeLogRecorder,
    sleep: Callable[[float], None] = time.sleep,
) -> OrgResult:
    """
    Scrape every configured platform for one organization, then record the
    attempt on its config. Platforms the budget does not reach are skipped
    and left out of the result.
    """
    org_id = target.organization_id
    result = OrgResult(organization_id=org_id)

    db = session_factory()
    try:
        for platform_id in target.platforms:
            if deadline.expired():
                logger.info(f"{org_id}: budget exhausted, skipping remaining platforms")
                break
            result.platforms.append(
                scrape_platform(db, target, platform_id, recorder=recorder, client=client, sleep=sleep)
            )

        result.success = all(p.status == "success" for p in result.platforms)
        first_error = None
        if not result.success:
            first_error = next(
                (e for p in result.platforms if p.status != "success" for e in p.errors),
                None,
            )

        try:
            update_org_config_after_scrape(db, org_id, result.success, first_error)
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to update scrape config for {org_id}: {e}")
    finally:
        db.close()

    return result


def run_scrape_cycle(
    options: CycleOptions,
    *,
    session_factory: Callable[[], Session] = SessionLocal,
    client_factory: Callable[[], httpx.Client] = new_client,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> CycleResult:
    """
    Execute one budgeted scrape cycle over every organization that is due.

    1. Return a no-op result when scraping is disabled
    2. Verify the schema (SchemaMissingError aborts the whole invocation)
    3. Load the due list, oldest due first
    4. Scrape organizations sequentially until the deadline passes

    Store errors while loading the due list propagate to the caller.
    """
    deadline = Deadline(options.budget_seconds, clock)

    def _finish(result: CycleResult) -> CycleResult:
        result.duration_ms = int(deadline.elapsed() * 1000)
        return result

    if not options.enabled:
        logger.info("Market intel scraping is disabled; nothing to do")
        return _finish(CycleResult(message="Market intelligence scraping is disabled"))

    db = session_factory()
    try:
        if not check_schema_exists(db.get_bind()):
            raise SchemaMissingError()
        # Detach from the session before the long-running part
        targets = [OrgTarget.from_config(c) for c in get_configs_due_for_scraping(db)]
    finally:
        db.close()

    if not targets:
        logger.info("No organizations due for scraping")
        return _finish(CycleResult(message="No organizations due for scraping"))

    logger.info(f"=== Scrape cycle starting: {len(targets)} organizations due ===")
    result = CycleResult()
    recorder = ScrapeLogRecorder(session_factory)
    client = client_factory()
    try:
        for target in targets:
            if deadline.expired():
                result.stopped_early = True
                logger.info(
                    f"Budget of {options.budget_seconds:.0f}s exhausted after "
                    f"{result.processed} organizations; {len(targets) - result.processed} deferred"
                )
                break

            org_result = run_organization(
                target,
                deadline,
                session_factory=session_factory,
                client=client,
                recorder=recorder,
                sleep=sleep,
            )
            result.results.append(org_result)
            result.processed += 1
    finally:
        client.close()

    result.successful_orgs = sum(1 for r in result.results if r.success)
    result.total_listings = sum(p.listings_found for r in result.results for p in r.platforms)
    result.message = f"Processed {result.processed} organizations"
    _finish(result)
    logger.info(
        f"=== Scrape cycle complete: {result.successful_orgs}/{result.processed} ok, "
        f"{result.total_listings} listings, {result.duration_ms}ms ==="
    )
    return result


def run_single_organization(
    target: OrgTarget,
    options: CycleOptions,
    *,
    session_factory: Callable[[], Session] = SessionLocal,
    client_factory: Callable[[], httpx.Client] = new_client,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> OrgResult:
    """Scrape one organization right away, under the same budget as a cycle."""
    deadline = Deadline(options.budget_seconds, clock)
    client = client_factory()
    try:
        return run_organization(
            target,
            deadline,
            session_factory=session_factory,
            client=client,
            recorder=ScrapeLogRecorder(session_factory),
            sleep=sleep,
        )
    finally:
        client.close()
