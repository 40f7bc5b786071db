"""
Tests for src/marketintel/platforms/fetcher.py

HTTP is mocked with pytest-httpx; one response is registered per expected
request, so an extra request fails the test.
"""
from unittest.mock import patch

import httpx
import pytest

from marketintel.platforms import spitogatos
from marketintel.platforms.base import ScrapeFilters
from marketintel.platforms.fetcher import fetch_listings
from marketintel.platforms.registry import resolve_platform

SPITOGATOS_SALE_URL = "https://www.spitogatos.gr/pwlisi/katoikies"

SPITOGATOS = resolve_platform("spitogatos")
PAGE_1 = f"{SPITOGATOS_SALE_URL}?sort=date&order=desc"
PAGE_2 = f"{SPITOGATOS_SALE_URL}?page=2&sort=date&order=desc"


def _ids(fetch) -> list:
    return [raw.payload["source_listing_id"] for raw in fetch]


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

class TestPagination:

    def test_single_page_without_next_marker(self, httpx_mock, spitogatos_page):
        httpx_mock.add_response(url=PAGE_1, text=spitogatos_page([1, 2, 3]))
        fetch = fetch_listings(SPITOGATOS, ScrapeFilters(), 5, sleep=lambda s: None)
        assert _ids(fetch) == ["1", "2", "3"]
        assert fetch.pages_scraped == 1
        assert fetch.failed is False

    def test_follows_next_until_page_cap(self, httpx_mock, spitogatos_page):
        httpx_mock.add_response(url=PAGE_1, text=spitogatos_page([1], next_page=True))
        httpx_mock.add_response(url=PAGE_2, text=spitogatos_page([2], next_page=True))
        sleeps = []
        fetch = fetch_listings(SPITOGATOS, ScrapeFilters(), 2, sleep=sleeps.append)
        assert _ids(fetch) == ["1", "2"]
        assert fetch.pages_scraped == 2
        assert sleeps == [SPITOGATOS.request_delay]

    def test_records_are_platform_tagged(self, httpx_mock, spitogatos_page):
        httpx_mock.add_response(url=PAGE_1, text=spitogatos_page([1]))
        raws = list(fetch_listings(SPITOGATOS, ScrapeFilters(), 1, sleep=lambda s: None))
        assert raws[0].platform == "spitogatos"

    def test_zero_pages_makes_no_requests(self, httpx_mock):
        fetch = fetch_listings(SPITOGATOS, ScrapeFilters(), 0)
        assert list(fetch) == []
        assert fetch.pages_scraped == 0

    def test_duplicates_across_pages_yielded_once(self, httpx_mock, spitogatos_page):
        httpx_mock.add_response(url=PAGE_1, text=spitogatos_page([1, 2], next_page=True))
        httpx_mock.add_response(url=PAGE_2, text=spitogatos_page([2, 3]))
        fetch = fetch_listings(SPITOGATOS, ScrapeFilters(), 5, sleep=lambda s: None)
        assert _ids(fetch) == ["1", "2", "3"]

    def test_page_with_only_duplicates_stops(self, httpx_mock, spitogatos_page):
        """A page repeating what we already have ends pagination even with a next marker."""
        httpx_mock.add_response(url=PAGE_1, text=spitogatos_page([1, 2], next_page=True))
        httpx_mock.add_response(url=PAGE_2, text=spitogatos_page([1, 2], next_page=True))
        fetch = fetch_listings(SPITOGATOS, ScrapeFilters(), 5, sleep=lambda s: None)
        assert _ids(fetch) == ["1", "2"]
        assert fetch.pages_scraped == 2

    def test_records_without_id_are_still_yielded(self, httpx_mock, spitogatos_page):
        httpx_mock.add_response(url=PAGE_1, text=spitogatos_page([1, None, None]))
        fetch = fetch_listings(SPITOGATOS, ScrapeFilters(), 1, sleep=lambda s: None)
        assert _ids(fetch) == ["1", None, None]

    def test_json_ld_item_with_non_string_url_keeps_siblings(self, httpx_mock, spitogatos_json_ld_page):
        httpx_mock.add_response(url=PAGE_1, text=spitogatos_json_ld_page([1, {"url": 5}, 2]))
        fetch = fetch_listings(SPITOGATOS, ScrapeFilters(), 1, sleep=lambda s: None)
        assert _ids(fetch) == ["1", None, "2"]
        assert fetch.failed is False

    def test_unmappable_record_is_passed_through(self, httpx_mock, spitogatos_page):
        httpx_mock.add_response(url=PAGE_1, text=spitogatos_page([1, 2, 3]))
        real_map = spitogatos.map_listing

        def flaky_map(payload):
            if payload["source_listing_id"] == "2":
                raise KeyError("price")
            return real_map(payload)

        with patch("marketintel.platforms.spitogatos.map_listing", side_effect=flaky_map):
            fetch = fetch_listings(SPITOGATOS, ScrapeFilters(), 1, sleep=lambda s: None)
            ids = _ids(fetch)

        assert ids == ["1", "2", "3"]
        assert fetch.error is None


# ---------------------------------------------------------------------------
# Transport failures
# ---------------------------------------------------------------------------

class TestTransportFailures:

    def test_failure_on_later_page_keeps_earlier_records(self, httpx_mock, spitogatos_page):
        httpx_mock.add_response(url=PAGE_1, text=spitogatos_page([1, 2], next_page=True))
        httpx_mock.add_response(url=PAGE_2, status_code=500)
        fetch = fetch_listings(SPITOGATOS, ScrapeFilters(), 3, sleep=lambda s: None)
        assert _ids(fetch) == ["1", "2"]
        assert fetch.failed is True
        assert fetch.error.startswith("[HTTPStatusError]")
        assert fetch.pages_scraped == 1

    def test_failure_on_first_page_yields_nothing(self, httpx_mock):
        httpx_mock.add_exception(httpx.ConnectError("connection refused"), url=PAGE_1)
        fetch = fetch_listings(SPITOGATOS, ScrapeFilters(), 3, sleep=lambda s: None)
        assert list(fetch) == []
        assert fetch.failed is True
        assert fetch.error == "[ConnectError] connection refused"
        assert fetch.pages_scraped == 0

    def test_no_further_requests_after_failure(self, httpx_mock, spitogatos_page):
        """Page 3 is never requested once page 2 fails."""
        httpx_mock.add_response(url=PAGE_1, text=spitogatos_page([1], next_page=True))
        httpx_mock.add_response(url=PAGE_2, status_code=503)
        fetch = fetch_listings(SPITOGATOS, ScrapeFilters(), 3, sleep=lambda s: None)
        list(fetch)
        assert len(httpx_mock.get_requests()) == 2


# ---------------------------------------------------------------------------
# Iterator contract
# ---------------------------------------------------------------------------

class TestIteratorContract:

    def test_lazy_until_iterated(self, httpx_mock):
        fetch_listings(SPITOGATOS, ScrapeFilters(), 3)
        assert httpx_mock.get_requests() == []

    def test_not_restartable(self, httpx_mock, spitogatos_page):
        httpx_mock.add_response(url=PAGE_1, text=spitogatos_page([1]))
        fetch = fetch_listings(SPITOGATOS, ScrapeFilters(), 1, sleep=lambda s: None)
        list(fetch)
        with pytest.raises(RuntimeError):
            iter(fetch)

    def test_uses_supplied_client(self, httpx_mock, spitogatos_page):
        httpx_mock.add_response(url=PAGE_1, text=spitogatos_page([1]))
        with httpx.Client() as client:
            list(fetch_listings(SPITOGATOS, ScrapeFilters(), 1, client=client))
            assert not client.is_closed


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

class TestFilters:

    def test_supported_filters_become_query_params(self, httpx_mock, spitogatos_page):
        httpx_mock.add_response(
            url=f"{SPITOGATOS_SALE_URL}?price_from=100000&price_to=300000&sort=date&order=desc",
            text=spitogatos_page([1]),
        )
        filters = ScrapeFilters(min_price=100000, max_price=300000)
        assert _ids(fetch_listings(SPITOGATOS, filters, 1)) == ["1"]

    def test_unsupported_filters_ignored(self, httpx_mock):
        """XE.gr has no price params; the request goes out without them."""
        httpx_mock.add_response(
            url="https://www.xe.gr/en/property/r/property-for-sale",
            text="<html><body></body></html>",
        )
        xe = resolve_platform("xe_gr")
        fetch = fetch_listings(xe, ScrapeFilters(min_price=1000, areas=("Glyfada",)), 2)
        assert list(fetch) == []
        assert fetch.failed is False
