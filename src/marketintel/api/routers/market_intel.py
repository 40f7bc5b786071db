from typing import Callable, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from marketintel.api.deps import (
    get_client_factory,
    get_cycle_options,
    get_session_factory,
    require_admin_token,
)
from marketintel.api.schemas.market_intel import (
    ListingOut,
    OrgConfigOut,
    OrgConfigUpdate,
    PlatformOut,
    ScrapeLogOut,
)
from marketintel.api.schemas.scrape import OrgResultOut
from marketintel.config_store import check_schema_exists, get_or_create_org_config, get_org_config
from marketintel.db.models import PlatformListing, utcnow
from marketintel.db.session import get_db
from marketintel.platforms.registry import PLATFORMS
from marketintel.scheduler.cycle import CycleOptions, run_single_organization
from marketintel.scheduler.runner import OrgTarget
from marketintel.scrape_log import recent_logs

router = APIRouter(
    prefix="/market-intel",
    tags=["market-intel"],
    dependencies=[Depends(require_admin_token)],
)

MAX_LISTINGS_LIMIT = 500
CLEARABLE_FIELDS = {"min_price", "max_price"}


# ---------------------------------------------------------------------------
# Platform catalog
# ---------------------------------------------------------------------------


@router.get("/platforms", response_model=list[PlatformOut])
def list_platforms() -> list[PlatformOut]:
    return [
        PlatformOut(
            id=p.id,
            name=p.name,
            base_url=p.base_url,
            supported_filters=sorted(p.supported_filters),
        )
        for p in PLATFORMS.values()
    ]


# ---------------------------------------------------------------------------
# Per-organization configuration
# ---------------------------------------------------------------------------


@router.get("/orgs/{organization_id}/config", response_model=OrgConfigOut)
def read_config(organization_id: str, db: Session = Depends(get_db)) -> OrgConfigOut:
    """Return the organization's config, creating the disabled default on first access."""
    return OrgConfigOut.model_validate(get_or_create_org_config(db, organization_id))


@router.put("/orgs/{organization_id}/config", response_model=OrgConfigOut)
def update_config(
    organization_id: str,
    body: OrgConfigUpdate,
    db: Session = Depends(get_db),
) -> OrgConfigOut:
    """Apply a partial config update.

    Enabling makes the organization ACTIVE and due immediately (and clears an
    ERROR state); disabling pauses it.
    """
    changes = body.model_dump(exclude_unset=True)
    config = get_or_create_org_config(db, organization_id)

    min_price = changes.get("min_price", config.min_price)
    max_price = changes.get("max_price", config.max_price)
    if min_price is not None and max_price is not None and max_price < min_price:
        raise HTTPException(status_code=422, detail="max_price must be >= min_price")

    for field, value in changes.items():
        if field == "is_enabled":
            continue
        # null clears a price bound; for every other field it means "leave as is"
        if value is None and field not in CLEARABLE_FIELDS:
            continue
        setattr(config, field, value)

    enabled = changes.get("is_enabled")
    if enabled is True:
        config.is_enabled = True
        config.status = "ACTIVE"
        config.next_scrape_due = utcnow()
        config.consecutive_failures = 0
    elif enabled is False:
        config.is_enabled = False
        config.status = "PAUSED"

    db.commit()
    db.refresh(config)
    return OrgConfigOut.model_validate(config)


@router.delete("/orgs/{organization_id}/config", response_model=OrgConfigOut)
def disable_config(organization_id: str, db: Session = Depends(get_db)) -> OrgConfigOut:
    """Disable scraping for the organization. The config row and collected listings are kept."""
    config = get_org_config(db, organization_id)
    if config is None:
        raise HTTPException(status_code=404, detail="Config not found")
    config.is_enabled = False
    config.status = "DISABLED"
    config.next_scrape_due = None
    db.commit()
    db.refresh(config)
    return OrgConfigOut.model_validate(config)


# ---------------------------------------------------------------------------
# On-demand scrape
# ---------------------------------------------------------------------------


@router.post("/orgs/{organization_id}/scrape", response_model=OrgResultOut)
def scrape_now(
    organization_id: str,
    db: Session = Depends(get_db),
    options: CycleOptions = Depends(get_cycle_options),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    client_factory: Callable[[], httpx.Client] = Depends(get_client_factory),
) -> OrgResultOut:
    """Scrape every configured platform for one organization now, within the usual budget."""
    if not check_schema_exists(db.get_bind()):
        raise HTTPException(status_code=503, detail="Market intel schema not found")
    config = get_org_config(db, organization_id)
    if config is None:
        raise HTTPException(status_code=404, detail="Config not found")
    if not config.is_enabled:
        raise HTTPException(status_code=409, detail="Market intelligence is disabled for this organization")

    target = OrgTarget.from_config(config)
    # End the read transaction; the scrape opens its own sessions
    db.rollback()

    result = run_single_organization(
        target,
        options,
        session_factory=session_factory,
        client_factory=client_factory,
    )
    return OrgResultOut.from_result(result)


# ---------------------------------------------------------------------------
# History and listings
# ---------------------------------------------------------------------------


@router.get("/orgs/{organization_id}/logs", response_model=list[ScrapeLogOut])
def list_logs(
    organization_id: str,
    platform: Optional[str] = Query(default=None),
    limit: int = Query(default=20),
    db: Session = Depends(get_db),
) -> list[ScrapeLogOut]:
    """Newest-first scrape history. limit is clamped to 1..100."""
    logs = recent_logs(db, organization_id, platform=platform, limit=limit)
    return [ScrapeLogOut.model_validate(log) for log in logs]


@router.get("/orgs/{organization_id}/listings", response_model=list[ListingOut])
def list_listings(
    organization_id: str,
    platform: Optional[str] = Query(default=None),
    active: Optional[bool] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=MAX_LISTINGS_LIMIT),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> list[ListingOut]:
    stmt = select(PlatformListing).where(PlatformListing.organization_id == organization_id)
    if platform:
        stmt = stmt.where(PlatformListing.platform == platform)
    if active is not None:
        stmt = stmt.where(PlatformListing.is_active.is_(active))
    stmt = stmt.order_by(PlatformListing.last_seen_at.desc(), PlatformListing.id).limit(limit).offset(offset)
    return [ListingOut.model_validate(row) for row in db.execute(stmt).scalars()]
