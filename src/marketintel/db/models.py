from datetime import datetime, timezone
from typing import Any, Optional
from sqlalchemy import (
    JSON,
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp. SQLite drops tzinfo on read, so everything is stored naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class OrgScrapeConfig(Base):
    __tablename__ = "org_scrape_configs"
    __table_args__ = (
        Index("ix_org_scrape_configs_due", "is_enabled", "status", "next_scrape_due"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0", nullable=False)
    status: Mapped[str] = mapped_column(
        String, default="PENDING_SETUP", server_default="PENDING_SETUP", nullable=False
    )
    platforms: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    target_areas: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    target_municipalities: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    property_types: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    transaction_types: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    min_price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_pages_per_platform: Mapped[int] = mapped_column(
        Integer, default=10, server_default="10", nullable=False
    )
    scrape_frequency: Mapped[str] = mapped_column(
        String, default="DAILY", server_default="DAILY", nullable=False
    )
    next_scrape_due: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    last_scrape_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    last_run_success: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    consecutive_failures: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


class PlatformListing(Base):
    __tablename__ = "platform_listings"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "platform", "source_listing_id",
            name="uq_listing_org_platform_source",
        ),
        Index("ix_platform_listings_org_platform_active", "organization_id", "platform", "is_active"),
        Index("ix_platform_listings_area", "area"),
        Index("ix_platform_listings_price", "price"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[str] = mapped_column(String, nullable=False)
    platform: Mapped[str] = mapped_column(String, nullable=False)
    source_listing_id: Mapped[str] = mapped_column(String, nullable=False)
    source_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    title: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    currency: Mapped[str] = mapped_column(String, default="EUR", server_default="EUR", nullable=False)
    price_per_sqm: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    property_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    transaction_type: Mapped[str] = mapped_column(String, default="sale", nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    area: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    municipality: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    size_sqm: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bedrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bathrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    floor: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    year_built: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    agency_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    agency_phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    images: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    listing_date: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    raw_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="1", nullable=False)
    first_seen_at: Mapped[datetime] = mapped_column(nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(nullable=False)
    last_price_change_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    previous_price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    price_history: Mapped[list["PriceHistory"]] = relationship(
        back_populates="listing", cascade="all, delete-orphan"
    )


class PriceHistory(Base):
    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    listing_id: Mapped[int] = mapped_column(ForeignKey("platform_listings.id"), nullable=False)
    organization_id: Mapped[str] = mapped_column(String, nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_sqm: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    change_type: Mapped[str] = mapped_column(String, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    listing: Mapped["PlatformListing"] = relationship(back_populates="price_history")


class ScrapeLog(Base):
    __tablename__ = "scrape_logs"
    __table_args__ = (
        Index("ix_scrape_logs_org_started", "organization_id", "started_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[str] = mapped_column(String, nullable=False)
    platform: Mapped[str] = mapped_column(String, nullable=False)
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String, default="running", nullable=False)
    listings_found: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    listings_new: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    listings_updated: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    listings_deactivated: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    pages_scraped: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    errors: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
