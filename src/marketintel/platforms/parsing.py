"""
Shared HTML/text helpers for platform adapters.

Greek portals format numbers with '.' as the thousands separator and ','
as the decimal separator ("€ 185.000", "85,5 τ.μ."). Helpers here never
raise on bad input; they return None and let the normalizer default.
"""
import json
import re
from typing import Any, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

# Grouped thousands ("185.000", "320,000", "320 000") first, then plain decimals.
_NUMBER_RE = re.compile(r"\d{1,3}(?:[ .,]\d{3})+(?:[.,]\d+)?|\d+(?:[.,]\d+)?")
_INT_RE = re.compile(r"(\d+)")
_PRICE_IN_TEXT_RE = re.compile(r"€\s*([\d\s.,]+\d)|(\d[\d\s.,]*)\s*€")
_SIZE_IN_TEXT_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*(?:m²|m2|τ\.?μ\.?|sqm)", re.IGNORECASE)
_ROOMS_IN_TEXT_RE = re.compile(r"(\d+)\s*(?:υπν|bed|δωμ|room)", re.IGNORECASE)

JSON_LD_LISTING_TYPES = {"Product", "Residence", "RealEstateListing", "Apartment", "House", "SingleFamilyResidence"}

_IMAGE_SKIP_WORDS = ("placeholder", "logo", "avatar")


def parse_number(text: Any) -> Optional[float]:
    """First number in text, accepting Greek and English separators.

    "185.000" and "320,000" are thousands; "85,5" and "1.500,50" carry decimals.
    """
    if text is None or isinstance(text, bool):
        return None
    if isinstance(text, (int, float)):
        return float(text)
    match = _NUMBER_RE.search(str(text))
    if not match:
        return None
    token = match.group(0).replace(" ", "")
    if "," in token and "." in token:
        decimal = "," if token.rfind(",") > token.rfind(".") else "."
        thousands = "." if decimal == "," else ","
        token = token.replace(thousands, "").replace(decimal, ".")
    elif "," in token or "." in token:
        sep = "," if "," in token else "."
        parts = token.split(sep)
        if all(len(p) == 3 for p in parts[1:]):
            token = "".join(parts)
        else:
            token = "".join(parts[:-1]) + "." + parts[-1]
    try:
        return float(token)
    except ValueError:
        return None


def parse_price(text: Any) -> Optional[int]:
    """Parse a price. "€ 185.000" -> 185000. Non-positive prices are None."""
    value = parse_number(text)
    return round(value) if value and value > 0 else None


def parse_size(text: Any) -> Optional[int]:
    """Parse a size in square meters. "85,5 τ.μ." -> 86."""
    value = parse_number(text)
    return round(value) if value and value > 0 else None


def parse_int(text: Any) -> Optional[int]:
    """First integer in text, e.g. "3 υπνοδωμάτια" -> 3."""
    if text is None:
        return None
    if isinstance(text, int):
        return text
    match = _INT_RE.search(str(text))
    return int(match.group(1)) if match else None


def parse_float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def clean_text(text: Optional[str]) -> Optional[str]:
    """Collapse whitespace; empty strings become None."""
    if not text:
        return None
    collapsed = " ".join(str(text).split())
    return collapsed or None


def absolute_url(href: Any, base_url: str) -> Optional[str]:
    if not href or not isinstance(href, str):
        return None
    if href.startswith("http"):
        return href
    return urljoin(base_url.rstrip("/") + "/", href.lstrip("/"))


def extract_area(location: Optional[str]) -> Optional[str]:
    """First component of "Area, City" / "Area - City" location strings."""
    if not location:
        return None
    first = re.split(r"[,\-–]", location)[0].strip()
    return first or None


def find_price_text(text: str) -> Optional[str]:
    match = _PRICE_IN_TEXT_RE.search(text)
    if not match:
        return None
    return "€" + (match.group(1) or match.group(2)).strip()


def find_size_text(text: str) -> Optional[str]:
    match = _SIZE_IN_TEXT_RE.search(text)
    return match.group(0) if match else None


def find_rooms(text: str) -> Optional[int]:
    match = _ROOMS_IN_TEXT_RE.search(text)
    return int(match.group(1)) if match else None


def first_text(container: Tag, selector: str) -> Optional[str]:
    """Stripped text of the first element matching selector inside container."""
    el = container.select_one(selector)
    return clean_text(el.get_text(" ", strip=True)) if el else None


def card_images(container: Tag, base_url: str) -> list[str]:
    images = []
    for img in container.select("img"):
        src = img.get("data-src") or img.get("src")
        if not src or any(word in src for word in _IMAGE_SKIP_WORDS):
            continue
        url = absolute_url(src, base_url)
        if url not in images:
            images.append(url)
    return images


def has_next_page(soup: BeautifulSoup) -> bool:
    """True when the results page links to a following page."""
    if soup.select_one('a[rel="next"], [aria-label="Next"], [aria-label="Επόμενη"]'):
        return True
    for button in soup.select('button[class*="next"]'):
        if not button.has_attr("disabled"):
            return True
    return False


def has_no_results_marker(soup: BeautifulSoup) -> bool:
    return soup.select_one(
        '.no-results, .empty-state, .no-listings, [data-testid="empty-state"]'
    ) is not None


def json_ld_items(soup: BeautifulSoup) -> list[dict[str, Any]]:
    """Listing-like objects from every application/ld+json script on the page.

    Handles ItemList (with ListItem wrappers), bare arrays and single objects.
    Malformed JSON blocks are skipped.
    """
    items: list[dict[str, Any]] = []
    for script in soup.select('script[type="application/ld+json"]'):
        content = script.string or script.get_text()
        if not content or not content.strip():
            continue
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and data.get("@type") == "ItemList":
            candidates = data.get("itemListElement") or []
        elif isinstance(data, list):
            candidates = data
        else:
            candidates = [data]
        for candidate in candidates:
            if not isinstance(candidate, dict):
                continue
            if candidate.get("@type") == "ListItem" and isinstance(candidate.get("item"), dict):
                candidate = candidate["item"]
            if candidate.get("@type") in JSON_LD_LISTING_TYPES:
                items.append(candidate)
    return items


def map_json_ld(item: dict[str, Any], base_url: str) -> dict[str, Any]:
    """Map a schema.org listing object onto ListingInput field names (no id)."""
    offers = item.get("offers") if isinstance(item.get("offers"), dict) else {}
    geo = item.get("geo") if isinstance(item.get("geo"), dict) else {}
    address = item.get("address") if isinstance(item.get("address"), dict) else {}
    floor_size = item.get("floorSize")
    if isinstance(floor_size, dict):
        floor_size = floor_size.get("value")
    image = item.get("image")
    if isinstance(image, str):
        images = [image]
    elif isinstance(image, list):
        images = [i for i in image if isinstance(i, str)]
    else:
        images = []
    return {
        "source_url": absolute_url(item.get("url"), base_url),
        "title": item.get("name"),
        "description": item.get("description"),
        "price": offers.get("price"),
        "currency": offers.get("priceCurrency"),
        "address": address.get("streetAddress"),
        "area": address.get("addressLocality"),
        "municipality": address.get("addressRegion"),
        "postal_code": address.get("postalCode"),
        "latitude": parse_float(geo.get("latitude")),
        "longitude": parse_float(geo.get("longitude")),
        "size_sqm": floor_size,
        "bedrooms": item.get("numberOfBedrooms") or item.get("numberOfRooms"),
        "bathrooms": item.get("numberOfBathroomsTotal"),
        "year_built": item.get("yearBuilt"),
        "listing_date": item.get("datePosted"),
        "images": images,
    }
