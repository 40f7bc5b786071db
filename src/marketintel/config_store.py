"""
Per-organization scrape configuration: due-list reads and post-scrape bookkeeping.

get_configs_due_for_scraping(): enabled, ACTIVE configs whose next_scrape_due
    is unset or in the past, oldest due first.
update_org_config_after_scrape(): records the outcome of an attempt and
    pushes next_scrape_due strictly forward, success or not.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import inspect, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session

from marketintel.db.models import OrgScrapeConfig, PlatformListing, ScrapeLog, utcnow
from marketintel.platforms.registry import all_platform_ids

logger = logging.getLogger("marketintel.config_store")

FREQUENCY_INTERVALS: dict[str, timedelta] = {
    "HOURLY": timedelta(hours=1),
    "TWICE_DAILY": timedelta(hours=12),
    "DAILY": timedelta(hours=24),
    "WEEKLY": timedelta(days=7),
}
MAX_CONSECUTIVE_FAILURES = 3

REQUIRED_TABLES = (
    OrgScrapeConfig.__tablename__,
    PlatformListing.__tablename__,
    ScrapeLog.__tablename__,
)


def next_due_after(frequency: str, now: datetime, previous_due: Optional[datetime] = None) -> datetime:
    """Next due time: max(now, previous_due) + interval. Unknown frequencies count as DAILY."""
    interval = FREQUENCY_INTERVALS.get(frequency, FREQUENCY_INTERVALS["DAILY"])
    base = now if previous_due is None or previous_due < now else previous_due
    return base + interval


def check_schema_exists(bind: Engine | Connection) -> bool:
    """True when every market intel table is present in the database."""
    tables = set(inspect(bind).get_table_names())
    return all(name in tables for name in REQUIRED_TABLES)


def get_configs_due_for_scraping(db: Session, now: Optional[datetime] = None) -> list[OrgScrapeConfig]:
    now = now or utcnow()
    stmt = (
        select(OrgScrapeConfig)
        .where(
            OrgScrapeConfig.is_enabled.is_(True),
            OrgScrapeConfig.status == "ACTIVE",
            (OrgScrapeConfig.next_scrape_due.is_(None)) | (OrgScrapeConfig.next_scrape_due <= now),
        )
        .order_by(OrgScrapeConfig.next_scrape_due.is_not(None), OrgScrapeConfig.next_scrape_due)
    )
    return list(db.execute(stmt).scalars())


def get_org_config(db: Session, organization_id: str) -> Optional[OrgScrapeConfig]:
    return db.execute(
        select(OrgScrapeConfig).where(OrgScrapeConfig.organization_id == organization_id)
    ).scalar_one_or_none()


def get_or_create_org_config(db: Session, organization_id: str) -> OrgScrapeConfig:
    """
    Return the organization's config, creating a disabled default one if missing.

    Defaults: every registered platform, sale + rent, 10 pages per platform,
    DAILY frequency, status PENDING_SETUP.
    """
    config = get_org_config(db, organization_id)
    if config is not None:
        return config

    config = OrgScrapeConfig(
        organization_id=organization_id,
        is_enabled=False,
        status="PENDING_SETUP",
        platforms=all_platform_ids(),
        target_areas=[],
        target_municipalities=[],
        property_types=[],
        transaction_types=["sale", "rent"],
        max_pages_per_platform=10,
        scrape_frequency="DAILY",
        consecutive_failures=0,
    )
    db.add(config)
    db.commit()
    db.refresh(config)
    logger.info(f"Created default scrape config for {organization_id}")
    return config


def update_org_config_after_scrape(
    db: Session,
    organization_id: str,
    success: bool,
    error_message: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[OrgScrapeConfig]:
    """
    Record an attempt and advance next_scrape_due.

    Success resets consecutive_failures and clears last_error. Failure
    increments consecutive_failures; the third failure in a row moves the
    config to ERROR, which takes it off the due list until it is re-enabled.
    next_scrape_due is computed from the freshly read row, so it never moves
    backwards past a value written by an overlapping invocation.
    """
    now = now or utcnow()
    config = db.execute(
        select(OrgScrapeConfig)
        .where(OrgScrapeConfig.organization_id == organization_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if config is None:
        logger.warning(f"No scrape config for {organization_id}; nothing to update")
        return None

    config.last_scrape_at = now
    config.last_run_success = success
    config.next_scrape_due = next_due_after(config.scrape_frequency, now, config.next_scrape_due)

    if success:
        config.consecutive_failures = 0
        config.last_error = None
    else:
        config.consecutive_failures = (config.consecutive_failures or 0) + 1
        config.last_error = (error_message or "Scrape failed")[:1000]
        if config.consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
            config.status = "ERROR"
            logger.warning(
                f"{organization_id}: {config.consecutive_failures} consecutive failures, "
                f"status set to ERROR"
            )

    db.commit()
    return config
