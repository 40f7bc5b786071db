"""
Scrape cycle CLI entrypoint.

Usage:
    scrape-all                        # Run one cycle immediately, then exit
    scrape-all --run-now              # Same as above (explicit)
    scrape-all --schedule             # Run a cycle every 15 minutes (blocks)
    scrape-all --schedule --interval-minutes 30
    scrape-all --budget 120           # Override the wall-clock budget (seconds)
    scrape-all --dry-run              # List organizations that are due without scraping

Entrypoint: marketintel.scrape_all:main (registered as `scrape-all` in pyproject.toml)
"""
import argparse
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from marketintel.api.settings import get_settings
from marketintel.config_store import get_configs_due_for_scraping
from marketintel.db.session import SessionLocal
from marketintel.errors import SchemaMissingError, format_error
from marketintel.scheduler.cycle import CycleOptions, CycleResult, run_scrape_cycle
from marketintel.scheduler.log_config import configure_logging

logger = logging.getLogger("marketintel.scheduler")


def _print_summary(result: CycleResult) -> None:
    print(
        f"\nCycle complete: {result.successful_orgs}/{result.processed} organizations ok, "
        f"{result.total_listings} listings, {result.duration_ms / 1000:.1f}s"
    )
    if result.stopped_early:
        print("Budget exhausted: remaining organizations deferred to the next run.")
    if result.processed == 0:
        print(result.message)

    failed = [r for r in result.results if not r.success]
    if failed:
        print("\nOrganizations with failures:")
        for org in failed:
            for p in org.platforms:
                if p.status != "success":
                    error = p.errors[-1] if p.errors else "unknown error"
                    print(f"  {org.organization_id}/{p.platform} [{p.status}]: {error}")


def _dry_run() -> None:
    db = SessionLocal()
    try:
        configs = get_configs_due_for_scraping(db)
    finally:
        db.close()
    print(f"\n{len(configs)} organizations due for scraping:")
    for c in configs:
        due = c.next_scrape_due.strftime("%Y-%m-%d %H:%M UTC") if c.next_scrape_due else "now"
        print(f"  [dry-run] {c.organization_id}: {', '.join(c.platforms)} (due {due})")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run a budgeted scrape cycle over every organization that is due."
    )
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--run-now",
        action="store_true",
        default=False,
        help="Run one cycle immediately, then exit (default if no mode specified)",
    )
    mode_group.add_argument(
        "--schedule",
        action="store_true",
        default=False,
        help="Enter scheduled mode: APScheduler fires a cycle every --interval-minutes (blocks)",
    )
    parser.add_argument(
        "--interval-minutes",
        type=int,
        default=15,
        help="Minutes between cycles in scheduled mode (default: 15)",
    )
    parser.add_argument(
        "--budget",
        type=float,
        default=None,
        help="Wall-clock budget per cycle in seconds (default: SCRAPE_BUDGET_SECONDS setting)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="List organizations that are due without scraping",
    )
    args = parser.parse_args()

    # Configure logging: rotating file + console
    configure_logging()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )

    if args.dry_run:
        try:
            _dry_run()
        except SQLAlchemyError as e:
            print(f"ERROR: {format_error(e)}")
            raise SystemExit(1)
        return

    settings = get_settings()
    options = CycleOptions(
        enabled=settings.market_intel_enabled,
        budget_seconds=args.budget if args.budget is not None else settings.scrape_budget_seconds,
    )

    # Default to run-now if neither --run-now nor --schedule specified
    if not args.schedule:
        try:
            result = run_scrape_cycle(options)
        except SchemaMissingError as e:
            print(f"ERROR: {e}")
            raise SystemExit(1)
        except SQLAlchemyError as e:
            print(f"ERROR: listing store unavailable: {format_error(e)}")
            raise SystemExit(1)
        _print_summary(result)
        if result.results and result.successful_orgs < result.processed:
            raise SystemExit(1)
    else:
        # Scheduled mode: APScheduler blocks, fires every N minutes
        from datetime import datetime as _datetime, timezone
        from apscheduler.schedulers.blocking import BlockingScheduler
        from apscheduler.triggers.interval import IntervalTrigger

        scheduler = BlockingScheduler(timezone=timezone.utc)
        job = scheduler.add_job(
            run_scrape_cycle,
            IntervalTrigger(minutes=args.interval_minutes),
            args=[options],
            id="market_intel_cycle",
            name="Market intelligence scrape cycle",
            misfire_grace_time=60,
            coalesce=True,              # Only run once if multiple firings missed
            max_instances=1,            # Never run two cycles concurrently
        )

        # next_run_time is only set after scheduler.start(); use trigger directly
        next_run = job.trigger.get_next_fire_time(None, _datetime.now(timezone.utc))

        logger.info(f"Scheduler started. Next run: {next_run}")
        print(f"Scheduler started. Next run at {next_run}. Press Ctrl+C to stop.")

        try:
            scheduler.start()  # Blocks until KeyboardInterrupt or SystemExit
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler shutting down...")
            scheduler.shutdown()
            print("Scheduler stopped.")


if __name__ == "__main__":
    main()
