"""
Tospitimou.gr adapter: agency-focused portal, English subdomain.

Search URL pattern (verified January 2026):
  /property/{for-sale|to-rent}/houses/{Location}/area-ids_[{id}],category_residential
Query params: price_from, price_to, p (page number, not 'page')

Listing cards:
  .search-result[id^="result-row_"]   one per listing, id suffix is the listing id
    [data-targeturl]                  detail URL (/sale-apartment-flat-Athens-Center/property/{id})
    .searchResultsH2 a                title
    .priceArea                        "€320,000" or "€ 2,577/sq.m."
    text                              "85 m²", "3rd floor"

The detail URL slug encodes transaction, property type and location, which
is often richer than the card text.

Platform: 'tospitimou'
"""
import re
from typing import Any, Optional

from bs4 import BeautifulSoup

from marketintel.platforms.base import PageResult, ScrapeFilters
from marketintel.platforms.parsing import (
    absolute_url,
    card_images,
    clean_text,
    extract_area,
    find_price_text,
    find_size_text,
    first_text,
    has_next_page,
    has_no_results_marker,
    parse_price,
    parse_size,
)
from marketintel.platforms.registry import PlatformConfig

# Portal region ids for common search areas
AREA_IDS: dict[str, str] = {
    "athens": "100",
    "athens-center": "100",
    "αθήνα": "100",
    "kolonaki": "100",
    "κολωνάκι": "100",
    "athens-north": "101",
    "kifisia": "101",
    "κηφισιά": "101",
    "athens-south": "102",
    "glyfada": "102",
    "γλυφάδα": "102",
    "athens-west": "103",
    "athens-east": "104",
    "piraeus": "105",
    "thessaloniki": "108",
    "θεσσαλονίκη": "108",
}
DEFAULT_LOCATION_SEGMENT = "/Athens-Center/area-ids_%5B100%5D,category_residential"

_ROW_ID_RE = re.compile(r"result-row_(\d+)")
_HREF_ID_RE = re.compile(r"/property/(\d+)")
_SLUG_RE = re.compile(r"/(sale|rent)-([a-z]+(?:-flat)?)-([^/]+)/property/", re.IGNORECASE)
_FLOOR_RE = re.compile(r"(\d+)(?:st|nd|rd|th)\s*floor|floor[:\s]*(\d+)|(ground)\s*floor", re.IGNORECASE)


def _location_segment(area_name: str) -> str:
    slug = "-".join(area_name.lower().split())
    area_id = AREA_IDS.get(slug) or AREA_IDS.get(area_name.lower())
    title_slug = "-".join(word.capitalize() for word in re.split(r"[\s-]+", area_name) if word)
    if area_id:
        return f"/{title_slug}/area-ids_%5B{area_id}%5D,category_residential"
    return f"/{title_slug}"


def build_request(
    platform: PlatformConfig, filters: ScrapeFilters, page_index: int
) -> tuple[str, dict[str, str]]:
    transaction_path = "to-rent" if filters.transaction_type == "rent" else "for-sale"
    path = f"/property/{transaction_path}/houses"
    if filters.areas:
        path += _location_segment(filters.areas[0])
    else:
        # The portal needs a concrete region; /Greece returns nothing
        path += DEFAULT_LOCATION_SEGMENT
    params: dict[str, str] = {}
    if filters.min_price is not None:
        params["price_from"] = str(filters.min_price)
    if filters.max_price is not None:
        params["price_to"] = str(filters.max_price)
    page = platform.page_value(page_index)
    if page is not None:
        params[platform.page_param] = page
    return f"{platform.base_url}{path}", params


def _listing_id(row_id: Optional[str], href: Optional[str]) -> Optional[str]:
    if row_id:
        match = _ROW_ID_RE.search(row_id)
        if match:
            return match.group(1)
    if href:
        match = _HREF_ID_RE.search(href)
        if match:
            return match.group(1)
    return None


def parse_page(html: str, platform: PlatformConfig, filters: ScrapeFilters) -> PageResult:
    soup = BeautifulSoup(html, "html.parser")
    if has_no_results_marker(soup):
        return PageResult(payloads=[], has_next=False)

    payloads = []
    for row in soup.select('.search-result[id^="result-row_"], .property-card'):
        link = row.select_one('a[href*="/property/"]')
        target = row.get("data-targeturl") or (link.get("href") if link else None)
        text = row.get_text(" ", strip=True)
        payloads.append({
            "row_id": row.get("id"),
            "target_url": absolute_url(target, platform.base_url),
            "heading": first_text(row, ".searchResultsH2 a, h2 a, h2, h3"),
            "price_area": first_text(row, ".priceArea, [class*=\"price\"]") or find_price_text(text),
            "size_text": find_size_text(text),
            "agent": first_text(row, '[class*="agent"], [class*="agency"]'),
            "images": card_images(row, platform.base_url),
            "search_transaction": filters.transaction_type,
            "text": text[:500],
        })
    return PageResult(payloads=payloads, has_next=has_next_page(soup))


def map_listing(payload: dict[str, Any]) -> dict[str, Any]:
    """Map a Tospitimou card payload to ListingInput fields.

    Prices shown per square meter ("/sq.m.") are converted to a total when the
    size is known, otherwise dropped.
    """
    href = payload.get("target_url")
    text = payload.get("text") or ""
    slug = _SLUG_RE.search(href or "")

    transaction = payload.get("search_transaction")
    property_type = None
    location = None
    if slug:
        transaction = slug.group(1).lower()
        property_type = slug.group(2).replace("-", " ")
        location = slug.group(3).replace("-", " ")
    if "/month" in text or "ανά μήνα" in text:
        transaction = "rent"

    size = parse_size(payload.get("size_text"))
    price_text = payload.get("price_area")
    price = parse_price(price_text)
    if price is not None and price_text and "sq" in price_text.lower():
        price = price * size if size else None

    floor = None
    floor_match = _FLOOR_RE.search(text)
    if floor_match:
        floor = floor_match.group(1) or floor_match.group(2) or "0"

    return {
        "source_listing_id": _listing_id(payload.get("row_id"), href),
        "source_url": href,
        "title": payload.get("heading"),
        "price": price,
        "size_sqm": size,
        "property_type": property_type,
        "transaction_type": transaction,
        "address": clean_text(location),
        "area": extract_area(location),
        "floor": floor,
        "agency_name": payload.get("agent"),
        "images": payload.get("images") or [],
        "raw_data": {"price_area": price_text, "size_text": payload.get("size_text"), "href": href},
    }
