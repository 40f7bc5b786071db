"""
Listing normalizer: a pure function that converts a platform-tagged raw record
into a DB-ready canonical listing dict.

Dispatch is on RawListing.platform: each platform adapter owns a pure
map_listing() that renames its own payload fields onto ListingInput, and
ListingInput's validators then canonicalize values. This module never touches
the database or the network.

Optional fields are forgiving: anything malformed becomes None. The one field
that is never defaulted is source_listing_id, since a listing without a stable
id cannot be reconciled.
"""
import re
import unicodedata
from typing import Any, Optional

from dateutil import parser as dateutil_parser
from pydantic import BaseModel, Field, ValidationError, field_validator

from marketintel.errors import NormalizationError
from marketintel.platforms.base import RawListing
from marketintel.platforms.fetcher import load_adapter
from marketintel.platforms.parsing import parse_float, parse_int, parse_price, parse_size
from marketintel.platforms.registry import resolve_platform

# ---------------------------------------------------------------------------
# Canonical vocabularies
# ---------------------------------------------------------------------------

PROPERTY_TYPES: frozenset[str] = frozenset({
    "APARTMENT", "HOUSE", "MAISONETTE", "STUDIO", "LOFT", "PENTHOUSE",
    "VILLA", "LAND", "COMMERCIAL", "WAREHOUSE", "PARKING", "OTHER",
})

# Keys are lowercased with Greek accents stripped.
PROPERTY_TYPE_ALIASES: dict[str, str] = {
    "διαμερισμα": "APARTMENT",
    "apartment": "APARTMENT",
    "apartment flat": "APARTMENT",
    "flat": "APARTMENT",
    "μονοκατοικια": "HOUSE",
    "house": "HOUSE",
    "detached house": "HOUSE",
    "μεζονετα": "MAISONETTE",
    "maisonette": "MAISONETTE",
    "στουντιο": "STUDIO",
    "studio": "STUDIO",
    "γκαρσονιερα": "STUDIO",
    "loft": "LOFT",
    "ρετιρε": "PENTHOUSE",
    "penthouse": "PENTHOUSE",
    "βιλα": "VILLA",
    "villa": "VILLA",
    "οικοπεδο": "LAND",
    "land": "LAND",
    "plot": "LAND",
    "επαγγελματικο": "COMMERCIAL",
    "καταστημα": "COMMERCIAL",
    "γραφειο": "COMMERCIAL",
    "commercial": "COMMERCIAL",
    "office": "COMMERCIAL",
    "store": "COMMERCIAL",
    "αποθηκη": "WAREHOUSE",
    "warehouse": "WAREHOUSE",
    "parking": "PARKING",
    "παρκινγκ": "PARKING",
    "θεση σταθμευσης": "PARKING",
}

TRANSACTION_ALIASES: dict[str, str] = {
    "πωληση": "sale",
    "sale": "sale",
    "for sale": "sale",
    "αγορα": "sale",
    "buy": "sale",
    "ενοικιαση": "rent",
    "rent": "rent",
    "rental": "rent",
    "for rent": "rent",
    "to rent": "rent",
    "ενοικιαζεται": "rent",
}
_RENT_KEYWORDS = ("ενοικ", "rent", "μισθ")

AREA_ALIASES: dict[str, str] = {
    "αθηνα": "Αθήνα",
    "athens": "Αθήνα",
    "θεσσαλονικη": "Θεσσαλονίκη",
    "thessaloniki": "Θεσσαλονίκη",
    "πειραιας": "Πειραιάς",
    "piraeus": "Πειραιάς",
    "κολωνακι": "Κολωνάκι",
    "kolonaki": "Κολωνάκι",
    "κηφισια": "Κηφισιά",
    "kifisia": "Κηφισιά",
    "γλυφαδα": "Γλυφάδα",
    "glyfada": "Γλυφάδα",
    "βουλα": "Βούλα",
    "voula": "Βούλα",
    "μαρουσι": "Μαρούσι",
    "marousi": "Μαρούσι",
}

FLOOR_ALIASES: dict[str, str] = {
    "ισογειο": "0",
    "ground": "0",
    "ground floor": "0",
    "υπογειο": "-1",
    "basement": "-1",
    "ημιυπογειο": "-0.5",
    "semi-basement": "-0.5",
    "ημιισογειο": "0.5",
    "mezzanine": "0.5",
}


def _fold(value: str) -> str:
    """Lowercase, trim and strip accents so 'Διαμέρισμα' matches 'διαμερισμα'."""
    decomposed = unicodedata.normalize("NFD", value.strip().lower())
    return "".join(c for c in decomposed if unicodedata.category(c) != "Mn")


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


# ---------------------------------------------------------------------------
# Pydantic input model with field validators
# ---------------------------------------------------------------------------

class ListingInput(BaseModel):
    source_listing_id: str
    source_url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = None
    currency: str = "EUR"
    property_type: Optional[str] = None
    transaction_type: str = "sale"
    address: Optional[str] = None
    area: Optional[str] = None
    municipality: Optional[str] = None
    postal_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    size_sqm: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    floor: Optional[str] = None
    year_built: Optional[int] = None
    agency_name: Optional[str] = None
    agency_phone: Optional[str] = None
    images: list[str] = Field(default_factory=list)
    listing_date: Optional[str] = None
    raw_data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("source_listing_id", mode="before")
    @classmethod
    def normalize_source_id(cls, v: Any) -> str:
        return str(v).strip()

    @field_validator(
        "source_url", "title", "description", "address", "municipality", "agency_name",
        mode="before",
    )
    @classmethod
    def normalize_text(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        collapsed = " ".join(str(v).split())
        return collapsed or None

    @field_validator("price", mode="before")
    @classmethod
    def normalize_price(cls, v: Any) -> Optional[int]:
        """Whole euros. Accepts "€ 185.000", "185000", 185000.0; anything else is None."""
        return parse_price(v)

    @field_validator("currency", mode="before")
    @classmethod
    def normalize_currency(cls, v: Any) -> str:
        if not v or not str(v).strip():
            return "EUR"
        return str(v).strip().upper()[:3]

    @field_validator("size_sqm", mode="before")
    @classmethod
    def normalize_size(cls, v: Any) -> Optional[int]:
        return parse_size(v)

    @field_validator("bedrooms", "bathrooms", mode="before")
    @classmethod
    def normalize_rooms(cls, v: Any) -> Optional[int]:
        value = parse_int(_blank_to_none(v))
        return value if value is not None and 0 <= value < 100 else None

    @field_validator("year_built", mode="before")
    @classmethod
    def normalize_year(cls, v: Any) -> Optional[int]:
        value = parse_int(_blank_to_none(v))
        return value if value is not None and 1800 <= value <= 2100 else None

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def normalize_coordinate(cls, v: Any) -> Optional[float]:
        return parse_float(v)

    @field_validator("property_type", mode="before")
    @classmethod
    def normalize_property_type(cls, v: Any) -> Optional[str]:
        """Map Greek/English labels to a canonical type; unrecognised labels become OTHER."""
        if v is None or not str(v).strip():
            return None
        if str(v).strip().upper() in PROPERTY_TYPES:
            return str(v).strip().upper()
        folded = _fold(str(v))
        if folded in PROPERTY_TYPE_ALIASES:
            return PROPERTY_TYPE_ALIASES[folded]
        for alias, canonical in PROPERTY_TYPE_ALIASES.items():
            if alias in folded:
                return canonical
        return "OTHER"

    @field_validator("transaction_type", mode="before")
    @classmethod
    def normalize_transaction(cls, v: Any) -> str:
        if v is None or not str(v).strip():
            return "sale"
        folded = _fold(str(v))
        if folded in TRANSACTION_ALIASES:
            return TRANSACTION_ALIASES[folded]
        if any(keyword in folded for keyword in _RENT_KEYWORDS):
            return "rent"
        return "sale"

    @field_validator("area", mode="before")
    @classmethod
    def normalize_area(cls, v: Any) -> Optional[str]:
        if v is None or not str(v).strip():
            return None
        folded = _fold(str(v))
        if folded in AREA_ALIASES:
            return AREA_ALIASES[folded]
        return " ".join(word.capitalize() for word in str(v).split())

    @field_validator("postal_code", mode="before")
    @classmethod
    def normalize_postal_code(cls, v: Any) -> Optional[str]:
        """Greek postal codes are five digits ("106 71" -> "10671")."""
        if v is None:
            return None
        digits = re.sub(r"\D", "", str(v))
        return digits if len(digits) == 5 else None

    @field_validator("floor", mode="before")
    @classmethod
    def normalize_floor(cls, v: Any) -> Optional[str]:
        if v is None or not str(v).strip():
            return None
        folded = _fold(str(v))
        if folded in FLOOR_ALIASES:
            return FLOOR_ALIASES[folded]
        match = re.search(r"-?\d+", folded)
        if match:
            return match.group(0)
        return str(v).strip()

    @field_validator("agency_phone", mode="before")
    @classmethod
    def normalize_phone(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        cleaned = re.sub(r"[^\d+]", "", str(v))
        return cleaned if len(cleaned) >= 10 else None

    @field_validator("images", mode="before")
    @classmethod
    def normalize_images(cls, v: Any) -> list[str]:
        if isinstance(v, str):
            return [v]
        if not isinstance(v, (list, tuple)):
            return []
        return [str(i) for i in v if i]

    @field_validator("listing_date", mode="before")
    @classmethod
    def normalize_listing_date(cls, v: Any) -> Optional[str]:
        """Return YYYY-MM-DD, or None when the date cannot be parsed."""
        if v is None or not str(v).strip():
            return None
        try:
            parsed = dateutil_parser.parse(str(v), dayfirst=True)
        except (ValueError, OverflowError):
            return None
        return parsed.strftime("%Y-%m-%d")

    @field_validator("raw_data", mode="before")
    @classmethod
    def normalize_raw_data(cls, v: Any) -> dict[str, Any]:
        return v if isinstance(v, dict) else {}


# ---------------------------------------------------------------------------
# Public normalize() function
# ---------------------------------------------------------------------------

def map_raw_listing(raw: RawListing) -> dict[str, Any]:
    """Dispatch a raw record to its platform's pure mapping function."""
    platform = resolve_platform(raw.platform)
    if platform is None:
        raise NormalizationError(f"No mapper for platform {raw.platform!r}")
    return load_adapter(platform).map_listing(raw.payload)


def normalize(raw: RawListing, platform: str, organization_id: str) -> dict:
    """
    Normalize a raw platform record to a DB-ready listing dict.

    Args:
        raw: RawListing produced by the Fetcher; raw.platform selects the mapper.
        platform: platform id the listing is stored under.
        organization_id: tenant that owns the listing.

    Returns:
        Dict with keys matching PlatformListing columns: organization_id,
        platform, source_listing_id, price, price_per_sqm, property_type, ...,
        raw_data. Timestamps and is_active are set by the reconciler.

    Raises:
        NormalizationError: if no source_listing_id can be derived, the platform
            has no mapper, the payload cannot be mapped, or the mapped record
            fails validation.
    """
    try:
        mapped = map_raw_listing(raw)
    except (TypeError, AttributeError, KeyError, ValueError) as e:
        raise NormalizationError(f"{platform} listing could not be mapped: {e}") from e
    source_id = mapped.get("source_listing_id")
    if source_id is None or not str(source_id).strip():
        raise NormalizationError(
            f"{platform} listing has no source listing id "
            f"(url={mapped.get('source_url')!r})"
        )
    try:
        inp = ListingInput(**mapped)
    except ValidationError as e:
        raise NormalizationError(f"{platform} listing {source_id}: {e}") from e

    price_per_sqm = None
    if inp.price and inp.size_sqm:
        price_per_sqm = round(inp.price / inp.size_sqm)

    listing = inp.model_dump()
    listing.update({
        "organization_id": organization_id,
        "platform": platform,
        "price_per_sqm": price_per_sqm,
    })
    return listing
