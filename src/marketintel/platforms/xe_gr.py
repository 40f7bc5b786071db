"""
XE.gr adapter: second largest Greek portal.

Search URLs (verified January 2026):
  /en/property/r/{segment}-for-sale
  /en/property/r/{segment}-to-rent
where segment is "property" (all types) or a single property type slug.
Detail pages: /en/property/d/{listing_id}/{slug}

Result pages carry JSON-LD; the card fallback uses [data-property-id] and
links to /property/d/. XE has no price query parameters, so price bounds are
not supported here and are ignored.

Platform: 'xe_gr'
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
    find_rooms,
    find_size_text,
    first_text,
    has_next_page,
    has_no_results_marker,
    json_ld_items,
    map_json_ld,
    parse_int,
    parse_price,
    parse_size,
)
from marketintel.platforms.registry import PlatformConfig

BASE_URL = "https://www.xe.gr"

PROPERTY_TYPE_SEGMENTS: dict[str, str] = {
    "APARTMENT": "apartment",
    "STUDIO": "apartment",
    "HOUSE": "detached-house",
    "VILLA": "detached-house",
    "MAISONETTE": "maisonette",
    "LAND": "plots-of-land",
    "COMMERCIAL": "commercial-property",
    "WAREHOUSE": "commercial-property",
    "PARKING": "parking-spaces",
}

_ID_RE = re.compile(r"/property/d/(\d+)|/d/(\d+)")


def _listing_id_from_href(href: Any) -> Optional[str]:
    if not href or not isinstance(href, str):
        return None
    match = _ID_RE.search(href)
    if not match:
        return None
    return match.group(1) or match.group(2)


def build_request(
    platform: PlatformConfig, filters: ScrapeFilters, page_index: int
) -> tuple[str, dict[str, str]]:
    transaction_path = "to-rent" if filters.transaction_type == "rent" else "for-sale"
    segment = "property"
    # The path holds one type; multi-type searches use the catch-all segment
    if len(filters.property_types) == 1:
        segment = PROPERTY_TYPE_SEGMENTS.get(filters.property_types[0].upper(), "property")
    params: dict[str, str] = {}
    page = platform.page_value(page_index)
    if page is not None:
        params[platform.page_param] = page
    return f"{platform.base_url}/en/property/r/{segment}-{transaction_path}", params


def _parse_cards(soup: BeautifulSoup, base_url: str, transaction: str) -> list[dict[str, Any]]:
    cards = soup.select('[data-property-id], [data-testid="property-card"], article[class*="listing"]')
    payloads = []
    seen: set[str] = set()
    for card in cards:
        link = card.select_one('a[href*="/property/d/"]')
        href = link.get("href") if link else None
        listing_id = card.get("data-property-id") or _listing_id_from_href(href)
        if listing_id and listing_id in seen:
            continue
        if listing_id:
            seen.add(listing_id)
        text = card.get_text(" ", strip=True)
        payloads.append({
            "propertyId": listing_id,
            "detailUrl": absolute_url(href, base_url),
            "headline": first_text(card, '[data-testid="title"], [class*="title"], h2, h3'),
            "priceLabel": first_text(card, '[data-testid="price"], [class*="price"], [data-price]')
            or find_price_text(text),
            "areaLabel": first_text(card, '[data-testid="size"], [class*="size"]') or find_size_text(text),
            "bedroomsLabel": first_text(card, '[data-testid="bedrooms"], [class*="bedroom"]'),
            "locationLabel": first_text(card, '[data-testid="location"], [class*="location"], [class*="address"]'),
            "typeLabel": first_text(card, '[data-testid="property-type"], [class*="Type"]'),
            "agencyLabel": first_text(card, '[class*="agency"], [class*="agent"]'),
            "photos": card_images(card, base_url),
            "transaction": transaction,
            "text": text[:500],
        })
    return payloads


def parse_page(html: str, platform: PlatformConfig, filters: ScrapeFilters) -> PageResult:
    soup = BeautifulSoup(html, "html.parser")
    if has_no_results_marker(soup):
        return PageResult(payloads=[], has_next=False)

    transaction = filters.transaction_type
    items = json_ld_items(soup)
    if items:
        payloads = [
            {
                "propertyId": _listing_id_from_href(item.get("url")),
                "jsonLd": item,
                "transaction": transaction,
            }
            for item in items
        ]
    else:
        payloads = _parse_cards(soup, platform.base_url, transaction)
    return PageResult(payloads=payloads, has_next=has_next_page(soup))


def map_listing(payload: dict[str, Any]) -> dict[str, Any]:
    """Map an XE.gr payload (JSON-LD or card) to ListingInput fields."""
    if "jsonLd" in payload:
        item = payload["jsonLd"]
        mapped = map_json_ld(item, BASE_URL)
        mapped["source_listing_id"] = payload.get("propertyId")
        mapped["transaction_type"] = payload.get("transaction")
        mapped["raw_data"] = item
        return mapped

    location = payload.get("locationLabel")
    return {
        "source_listing_id": payload.get("propertyId"),
        "source_url": payload.get("detailUrl"),
        "title": payload.get("headline"),
        "price": parse_price(payload.get("priceLabel")),
        "size_sqm": parse_size(payload.get("areaLabel")),
        "bedrooms": parse_int(payload.get("bedroomsLabel")) or find_rooms(payload.get("text") or ""),
        "property_type": payload.get("typeLabel"),
        "transaction_type": payload.get("transaction"),
        "address": clean_text(location),
        "area": extract_area(location),
        "agency_name": payload.get("agencyLabel"),
        "images": payload.get("photos") or [],
        "raw_data": {
            "priceLabel": payload.get("priceLabel"),
            "areaLabel": payload.get("areaLabel"),
            "locationLabel": location,
        },
    }
