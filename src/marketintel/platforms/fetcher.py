"""
Paginated listing fetcher.

fetch_listings() returns a ListingFetch: a lazy, single-use iterable of
RawListing bounded by max_pages. Each page is one HTTP GET. A transport error
on any page stops the fetch and keeps everything already yielded; the error is
recorded on the ListingFetch instead of being raised, so the caller can tell a
truncated fetch (failed=True) from a genuinely short one.
"""
import importlib
import logging
import time
from typing import Callable, Iterator, Optional

import httpx

from marketintel.errors import format_error
from marketintel.platforms.base import PlatformAdapter, RawListing, ScrapeFilters
from marketintel.platforms.registry import PlatformConfig

logger = logging.getLogger("marketintel.fetcher")

_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/122.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "el-GR,el;q=0.9,en-US;q=0.8,en;q=0.7",
}


def new_client(timeout: float = 30.0) -> httpx.Client:
    """HTTP client for platform requests: browser-like headers, redirects followed."""
    return httpx.Client(timeout=timeout, headers=_HEADERS, follow_redirects=True)


def load_adapter(platform: PlatformConfig) -> PlatformAdapter:
    return importlib.import_module(platform.adapter)


class ListingFetch:
    """Single-use iterator over a platform's raw listings.

    Attributes populated while iterating:
        pages_scraped: pages fetched and parsed successfully
        error: "[ExcType] message" of the transport error that stopped the fetch
        failed: True when a transport error cut the fetch short
    """

    def __init__(
        self,
        platform: PlatformConfig,
        filters: ScrapeFilters,
        max_pages: int,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.platform = platform
        self.filters = filters
        self.max_pages = max(0, max_pages)
        self.pages_scraped = 0
        self.error: Optional[str] = None
        self._client = client
        self._sleep = sleep
        self._started = False

    @property
    def failed(self) -> bool:
        return self.error is not None

    def __iter__(self) -> Iterator[RawListing]:
        if self._started:
            raise RuntimeError(
                f"Listing fetch for {self.platform.id} has already been consumed"
            )
        self._started = True
        return self._pages()

    def _pages(self) -> Iterator[RawListing]:
        adapter = load_adapter(self.platform)
        ignored = self.filters.active_filters() - self.platform.supported_filters
        if ignored:
            logger.debug(f"{self.platform.id}: ignoring unsupported filters {sorted(ignored)}")

        owns_client = self._client is None
        client = self._client or new_client()
        seen_ids: set[str] = set()
        try:
            for page_index in range(self.max_pages):
                if page_index > 0 and self.platform.request_delay:
                    self._sleep(self.platform.request_delay)

                url, params = adapter.build_request(self.platform, self.filters, page_index)
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                except httpx.HTTPError as e:
                    self.error = format_error(e)
                    logger.warning(
                        f"{self.platform.id}: page {page_index + 1} failed, "
                        f"stopping with {self.pages_scraped} pages: {self.error}"
                    )
                    return

                page = adapter.parse_page(response.text, self.platform, self.filters)
                self.pages_scraped += 1

                new_on_page = 0
                for payload in page.payloads:
                    raw = RawListing(platform=self.platform.id, payload=payload)
                    try:
                        source_id = adapter.map_listing(payload).get("source_listing_id")
                    except (TypeError, AttributeError, KeyError, ValueError):
                        # Unmappable records pass through; the normalizer reports them
                        source_id = None
                    if source_id:
                        if str(source_id) in seen_ids:
                            continue
                        seen_ids.add(str(source_id))
                    new_on_page += 1
                    yield raw

                logger.debug(f"{self.platform.id}: page {page_index + 1}: {new_on_page} listings")
                if new_on_page == 0 or not page.has_next:
                    return
        finally:
            if owns_client:
                client.close()


def fetch_listings(
    platform: PlatformConfig,
    filters: ScrapeFilters,
    max_pages: int,
    client: Optional[httpx.Client] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ListingFetch:
    """Return a lazy fetch of up to max_pages result pages from platform."""
    return ListingFetch(platform, filters, max_pages, client=client, sleep=sleep)
