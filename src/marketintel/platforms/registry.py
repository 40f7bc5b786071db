"""
Centralized platform registry.

Single source of truth for the platforms the engine knows how to scrape.
All modules that need a platform's endpoint, pagination convention or
adapter module should resolve it from here.
"""
from dataclasses import dataclass, field
from typing import Optional

# Every filter name a platform may map to query parameters. Anything outside
# a platform's supported_filters is ignored for that platform.
FILTER_NAMES: frozenset[str] = frozenset({
    "areas",
    "municipalities",
    "min_price",
    "max_price",
    "property_types",
    "transaction_types",
})


@dataclass(frozen=True)
class PlatformConfig:
    id: str
    name: str
    base_url: str
    adapter: str                      # module path for importlib.import_module()
    page_param: str = "page"
    first_page: int = 1
    request_delay: float = 1.0        # seconds between page requests
    supported_filters: frozenset[str] = field(default_factory=frozenset)

    def page_value(self, page_index: int) -> Optional[str]:
        """Query value for the 0-based page index, or None for the first page."""
        if page_index == 0:
            return None
        return str(self.first_page + page_index)


PLATFORMS: dict[str, PlatformConfig] = {
    # Largest Greek portal. Greek search paths (/pwlisi, /enoikiasi) return
    # server-rendered cards more reliably than the English SPA routes.
    "spitogatos": PlatformConfig(
        id="spitogatos",
        name="Spitogatos.gr",
        base_url="https://www.spitogatos.gr",
        adapter="marketintel.platforms.spitogatos",
        request_delay=4.0,  # 15 requests/minute, site has anti-bot measures
        supported_filters=frozenset({
            "areas", "municipalities", "min_price", "max_price", "transaction_types",
        }),
    ),
    # Path-based routing: /en/property/r/{type}-{for-sale|to-rent}
    "xe_gr": PlatformConfig(
        id="xe_gr",
        name="XE.gr",
        base_url="https://www.xe.gr",
        adapter="marketintel.platforms.xe_gr",
        request_delay=3.0,
        supported_filters=frozenset({"property_types", "transaction_types"}),
    ),
    # English subdomain, paginates with ?p= rather than ?page=
    "tospitimou": PlatformConfig(
        id="tospitimou",
        name="Tospitimou.gr",
        base_url="https://en.tospitimou.gr",
        adapter="marketintel.platforms.tospitimou",
        page_param="p",
        request_delay=2.4,
        supported_filters=frozenset({
            "areas", "min_price", "max_price", "transaction_types",
        }),
    ),
}


def resolve_platform(platform_id: str) -> Optional[PlatformConfig]:
    """Return the PlatformConfig for platform_id, or None if it is not registered."""
    return PLATFORMS.get(platform_id)


def all_platform_ids() -> list[str]:
    return list(PLATFORMS)
