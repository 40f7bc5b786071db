"""
Shared fixtures: in-memory SQLite and canned platform result pages.

StaticPool keeps a single connection, so every session created from the
Session factory (the runner's, the scrape log recorder's, the test's own
inspection session) sees the same in-memory database.
"""
import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from marketintel.db.models import Base, OrgScrapeConfig

SPITOGATOS_SALE_URL = "https://www.spitogatos.gr/pwlisi/katoikies"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def Session(engine):
    """Session factory for the test engine."""
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(Session):
    session = Session()
    yield session
    session.close()


@pytest.fixture
def make_config(Session):
    """Insert an enabled, ACTIVE OrgScrapeConfig and return its organization id."""
    def _make(organization_id: str = "org-1", **overrides) -> str:
        values = dict(
            organization_id=organization_id,
            is_enabled=True,
            status="ACTIVE",
            platforms=["spitogatos"],
            target_areas=[],
            target_municipalities=[],
            property_types=[],
            transaction_types=["sale"],
            max_pages_per_platform=1,
            scrape_frequency="DAILY",
            next_scrape_due=None,
            consecutive_failures=0,
        )
        values.update(overrides)
        with Session() as s:
            s.add(OrgScrapeConfig(**values))
            s.commit()
        return organization_id
    return _make


# ---------------------------------------------------------------------------
# Platform HTML
# ---------------------------------------------------------------------------

def _spitogatos_card(listing_id, price: str = "€ 185.000", size: str = "85 τ.μ.") -> str:
    href = f"/aggelies/{listing_id}" if listing_id is not None else "/aggelies/draft"
    return f"""
    <article class="listing-card">
      <a href="{href}"><h3>Διαμέρισμα {size}</h3></a>
      <div class="price">{price}</div>
      <div class="size">{size}</div>
      <div class="location">Κολωνάκι, Αθήνα</div>
    </article>
    """


@pytest.fixture
def spitogatos_page():
    """Build a Spitogatos results page from listing ids (None = card without an id).

    prices maps a listing id to its price text; next_page adds a rel=next link.
    """
    def _page(ids, prices: dict | None = None, next_page: bool = False) -> str:
        prices = prices or {}
        cards = "".join(
            _spitogatos_card(i, price=prices.get(i, "€ 185.000")) for i in ids
        )
        pager = '<a rel="next" href="?page=2">Επόμενη</a>' if next_page else ""
        return f"<html><body><main>{cards}</main>{pager}</body></html>"
    return _page


@pytest.fixture
def spitogatos_json_ld_page():
    """Build a Spitogatos results page carrying a JSON-LD ItemList.

    Each entry becomes one Residence: an int is a listing id, a dict overrides
    the item's keys verbatim (e.g. {"url": 5} for a malformed link).
    """
    def _page(entries) -> str:
        elements = []
        for position, entry in enumerate(entries, start=1):
            overrides = entry if isinstance(entry, dict) else {}
            item = {
                "@type": "Residence",
                "url": f"https://www.spitogatos.gr/aggelies/{entry}",
                "name": "Διαμέρισμα 85 τ.μ.",
                "offers": {"@type": "Offer", "price": 185000, "priceCurrency": "EUR"},
                "floorSize": {"value": 85},
            }
            item.update(overrides)
            elements.append({"@type": "ListItem", "position": position, "item": item})
        ld = json.dumps({"@type": "ItemList", "itemListElement": elements})
        return (
            '<html><head><script type="application/ld+json">'
            f"{ld}</script></head><body><main></main></body></html>"
        )
    return _page
