from datetime import datetime
from typing import Literal, Optional

from pydantic import Field, field_validator

from marketintel.api.schemas.scrape import CamelModel
from marketintel.platforms.registry import all_platform_ids

Frequency = Literal["HOURLY", "TWICE_DAILY", "DAILY", "WEEKLY"]
TransactionType = Literal["sale", "rent"]


class PlatformOut(CamelModel):
    id: str
    name: str
    base_url: str
    supported_filters: list[str]


class OrgConfigOut(CamelModel):
    organization_id: str
    is_enabled: bool
    status: str
    platforms: list[str]
    target_areas: list[str]
    target_municipalities: list[str]
    property_types: list[str]
    transaction_types: list[str]
    min_price: Optional[int]
    max_price: Optional[int]
    max_pages_per_platform: int
    scrape_frequency: str
    next_scrape_due: Optional[datetime]
    last_scrape_at: Optional[datetime]
    last_run_success: Optional[bool]
    last_error: Optional[str]
    consecutive_failures: int


class OrgConfigUpdate(CamelModel):
    """Partial update: only fields present in the request body are applied."""
    is_enabled: Optional[bool] = None
    platforms: Optional[list[str]] = None
    target_areas: Optional[list[str]] = None
    target_municipalities: Optional[list[str]] = None
    property_types: Optional[list[str]] = None
    transaction_types: Optional[list[TransactionType]] = None
    min_price: Optional[int] = Field(default=None, ge=0)
    max_price: Optional[int] = Field(default=None, ge=0)
    max_pages_per_platform: Optional[int] = Field(default=None, ge=1, le=50)
    scrape_frequency: Optional[Frequency] = None

    @field_validator("platforms")
    @classmethod
    def known_platforms(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        if v is None:
            return v
        known = all_platform_ids()
        unknown = [p for p in v if p not in known]
        if unknown:
            raise ValueError(f"Unknown platforms: {', '.join(unknown)}")
        if not v:
            raise ValueError("At least one platform must be selected")
        # Keep order, drop repeats
        return list(dict.fromkeys(v))


class ScrapeLogOut(CamelModel):
    id: int
    organization_id: str
    platform: str
    started_at: datetime
    completed_at: Optional[datetime]
    status: str
    listings_found: int
    listings_new: int
    listings_updated: int
    listings_deactivated: int
    pages_scraped: int
    errors: list[str]
    duration_ms: Optional[int]


class ListingOut(CamelModel):
    id: int
    platform: str
    source_listing_id: str
    source_url: Optional[str]
    title: Optional[str]
    price: Optional[int]
    currency: str
    price_per_sqm: Optional[int]
    property_type: Optional[str]
    transaction_type: str
    area: Optional[str]
    municipality: Optional[str]
    size_sqm: Optional[int]
    bedrooms: Optional[int]
    floor: Optional[str]
    agency_name: Optional[str]
    is_active: bool
    first_seen_at: datetime
    last_seen_at: datetime
    last_price_change_at: Optional[datetime]
    previous_price: Optional[int]
