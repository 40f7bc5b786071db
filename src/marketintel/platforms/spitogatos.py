"""
Spitogatos.gr adapter: largest Greek portal (450K+ listings).

Search URLs (verified January 2026):
  /pwlisi/katoikies       residential for sale
  /enoikiasi/katoikies    residential for rent
Query params: price_from, price_to, geo_area_txt, page, sort=date, order=desc

Pages embed JSON-LD (ItemList of Residence objects) on most result pages; when
it is missing we fall back to the server-rendered cards:
  [data-listing-id] / article[class*="listing"] / [data-testid="property-card"]
    a[href*="/aggelies/{id}"]  detail link (id is the source listing id)
    [class*="price"]           "€ 185.000"
    [class*="size"]            "85 τ.μ."
    [class*="room"]            "2 υπν."
    [class*="location"]        "Κολωνάκι, Αθήνα"

Platform: 'spitogatos'
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

SALE_PATH = "/pwlisi/katoikies"
RENT_PATH = "/enoikiasi/katoikies"

_CARD_SELECTORS = [
    "[data-listing-id]",
    '[data-testid="property-card"]',
    'article[class*="listing"]',
    'article[class*="property"]',
    "div[class*=\"PropertyCard\"]",
]
_ID_RE = re.compile(r"/aggelies/(\d+)|/property/(\d+)")


def _listing_id_from_href(href: Any) -> Optional[str]:
    if not href or not isinstance(href, str):
        return None
    match = _ID_RE.search(href)
    if not match:
        return None
    return match.group(1) or match.group(2)


def _phone(card) -> Optional[str]:
    link = card.select_one('a[href^="tel:"]')
    return link["href"][len("tel:"):] if link else None


def build_request(
    platform: PlatformConfig, filters: ScrapeFilters, page_index: int
) -> tuple[str, dict[str, str]]:
    path = RENT_PATH if filters.transaction_type == "rent" else SALE_PATH
    params: dict[str, str] = {}
    if filters.min_price is not None:
        params["price_from"] = str(filters.min_price)
    if filters.max_price is not None:
        params["price_to"] = str(filters.max_price)
    if filters.locations:
        # Free-text geo search accepts a single area
        params["geo_area_txt"] = filters.locations[0]
    page = platform.page_value(page_index)
    if page is not None:
        params[platform.page_param] = page
    params["sort"] = "date"
    params["order"] = "desc"
    return f"{platform.base_url}{path}", params


def _parse_cards(soup: BeautifulSoup, base_url: str, transaction: str) -> list[dict[str, Any]]:
    cards = []
    for selector in _CARD_SELECTORS:
        cards = soup.select(selector)
        if cards:
            break

    payloads = []
    for card in cards:
        link = card.select_one('a[href*="/aggelies/"], a[href*="/property/"]')
        href = link.get("href") if link else None
        listing_id = card.get("data-listing-id") or _listing_id_from_href(href)
        text = card.get_text(" ", strip=True)
        payloads.append({
            "source_listing_id": listing_id,
            "href": absolute_url(href, base_url),
            "title": first_text(card, 'h2, h3, [data-testid="title"], [class*="title"]'),
            "price_text": first_text(card, '[data-testid="price"], [class*="price"], [class*="Price"]')
            or find_price_text(text),
            "size_text": first_text(card, '[data-testid="size"], [class*="size"], [class*="Size"]')
            or find_size_text(text),
            "rooms_text": first_text(card, '[data-testid="bedrooms"], [class*="room"], [class*="Room"]'),
            "bathrooms_text": first_text(card, '[data-testid="bathrooms"], [class*="bath"]'),
            "location": first_text(card, '[data-testid="location"], [class*="location"], [class*="Location"]'),
            "property_type": first_text(card, '[data-testid="property-type"], [class*="type"]'),
            "agency": first_text(card, '[data-testid="agency"], [class*="agency"], [class*="Agency"]'),
            "phone": _phone(card),
            "images": card_images(card, base_url),
            "transaction": transaction,
            "card_text": text[:500],
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
                "source_listing_id": _listing_id_from_href(item.get("url")),
                "json_ld": item,
                "transaction": transaction,
            }
            for item in items
        ]
    else:
        payloads = _parse_cards(soup, platform.base_url, transaction)
    return PageResult(payloads=payloads, has_next=has_next_page(soup))


def map_listing(payload: dict[str, Any]) -> dict[str, Any]:
    """Map a Spitogatos payload (JSON-LD or card) to ListingInput fields."""
    if "json_ld" in payload:
        item = payload["json_ld"]
        mapped = map_json_ld(item, "https://www.spitogatos.gr")
        mapped["source_listing_id"] = payload.get("source_listing_id")
        mapped["transaction_type"] = payload.get("transaction")
        mapped["raw_data"] = item
        return mapped

    location = payload.get("location")
    return {
        "source_listing_id": payload.get("source_listing_id"),
        "source_url": payload.get("href"),
        "title": payload.get("title"),
        "price": parse_price(payload.get("price_text")),
        "size_sqm": parse_size(payload.get("size_text")),
        "bedrooms": parse_int(payload.get("rooms_text")) or find_rooms(payload.get("card_text") or ""),
        "bathrooms": parse_int(payload.get("bathrooms_text")),
        "property_type": payload.get("property_type"),
        "transaction_type": payload.get("transaction"),
        "address": clean_text(location),
        "area": extract_area(location),
        "agency_name": payload.get("agency"),
        "agency_phone": payload.get("phone"),
        "images": payload.get("images") or [],
        "raw_data": {
            "price_text": payload.get("price_text"),
            "size_text": payload.get("size_text"),
            "location": location,
        },
    }
