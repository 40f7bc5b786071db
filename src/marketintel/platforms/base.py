"""
Platform adapter base infrastructure.

PlatformAdapter: typing.Protocol that every adapter module satisfies structurally.
ScrapeFilters: an organization's target filters, as handed to the Fetcher.
RawListing: a platform-tagged raw record, the input to the Normalizer.
"""
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from marketintel.platforms.registry import PlatformConfig


@dataclass(frozen=True)
class ScrapeFilters:
    areas: tuple[str, ...] = ()
    municipalities: tuple[str, ...] = ()
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    property_types: tuple[str, ...] = ()
    transaction_types: tuple[str, ...] = ()

    @property
    def transaction_type(self) -> str:
        """Platforms search one transaction type at a time; the first configured wins."""
        return self.transaction_types[0] if self.transaction_types else "sale"

    @property
    def locations(self) -> tuple[str, ...]:
        """Area names, falling back to municipality names when no areas are set."""
        return self.areas or self.municipalities

    def active_filters(self) -> set[str]:
        """Names of the filters that actually constrain the search."""
        active = set()
        for name in ("areas", "municipalities", "property_types", "transaction_types"):
            if getattr(self, name):
                active.add(name)
        for name in ("min_price", "max_price"):
            if getattr(self, name) is not None:
                active.add(name)
        return active


@dataclass(frozen=True)
class RawListing:
    """One record exactly as a platform adapter parsed it, tagged with its platform."""
    platform: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class PageResult:
    payloads: list[dict[str, Any]]
    has_next: bool


class PlatformAdapter(Protocol):
    def build_request(
        self, platform: PlatformConfig, filters: ScrapeFilters, page_index: int
    ) -> tuple[str, dict[str, str]]:
        """Return (url, query params) for the 0-based page_index."""
        ...

    def parse_page(self, html: str, platform: PlatformConfig, filters: ScrapeFilters) -> PageResult:
        """Parse one search results page into raw payload dicts."""
        ...

    def map_listing(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Pure mapping of a raw payload onto the ListingInput field names."""
        ...
