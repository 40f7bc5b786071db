"""
Tests for src/marketintel/reconciler.py

Covers: insert vs update by natural key, price change detection and
history, reactivation, concurrent-insert fallback, stale deactivation.
"""
from datetime import datetime, timedelta
from unittest.mock import patch

from sqlalchemy import select

from marketintel import reconciler
from marketintel.db.models import PlatformListing, PriceHistory
from marketintel.reconciler import deactivate_stale_listings, upsert_listing

T0 = datetime(2026, 3, 1, 8, 0, 0)
T1 = T0 + timedelta(days=1)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _listing(source_id: str = "1", **overrides) -> dict:
    listing = {
        "organization_id": "org-1",
        "platform": "spitogatos",
        "source_listing_id": source_id,
        "source_url": f"https://www.spitogatos.gr/aggelies/{source_id}",
        "title": "Διαμέρισμα 85 τ.μ.",
        "price": 185000,
        "currency": "EUR",
        "price_per_sqm": 2176,
        "size_sqm": 85,
        "transaction_type": "sale",
        "area": "Κολωνάκι",
        "images": [],
        "raw_data": {},
    }
    listing.update(overrides)
    return listing


def _rows(db, **where) -> list[PlatformListing]:
    stmt = select(PlatformListing).order_by(PlatformListing.source_listing_id)
    for column, value in where.items():
        stmt = stmt.where(getattr(PlatformListing, column) == value)
    return list(db.execute(stmt).scalars())


def _history(db) -> list[PriceHistory]:
    return list(db.execute(select(PriceHistory).order_by(PriceHistory.id)).scalars())


# ---------------------------------------------------------------------------
# upsert_listing()
# ---------------------------------------------------------------------------

class TestUpsertInsert:

    def test_new_listing_inserted(self, db):
        result = upsert_listing(db, _listing(), now=T0)
        db.commit()
        assert result.is_new is True
        assert result.price_changed is False
        row = _rows(db)[0]
        assert row.price == 185000
        assert row.is_active is True
        assert row.first_seen_at == T0
        assert row.last_seen_at == T0
        assert row.previous_price is None

    def test_initial_price_history(self, db):
        upsert_listing(db, _listing(), now=T0)
        db.commit()
        history = _history(db)
        assert len(history) == 1
        assert history[0].change_type == "initial"
        assert history[0].price == 185000

    def test_no_history_without_price(self, db):
        upsert_listing(db, _listing(price=None, price_per_sqm=None), now=T0)
        db.commit()
        assert _history(db) == []

    def test_same_source_id_on_other_platform_is_a_new_row(self, db):
        upsert_listing(db, _listing("1"), now=T0)
        result = upsert_listing(db, _listing("1", platform="xe_gr"), now=T0)
        db.commit()
        assert result.is_new is True
        assert len(_rows(db)) == 2

    def test_same_source_id_for_other_org_is_a_new_row(self, db):
        upsert_listing(db, _listing("1"), now=T0)
        upsert_listing(db, _listing("1", organization_id="org-2"), now=T0)
        db.commit()
        assert len(_rows(db, source_listing_id="1")) == 2


class TestUpsertUpdate:

    def test_idempotent(self, db):
        upsert_listing(db, _listing(), now=T0)
        result = upsert_listing(db, _listing(), now=T1)
        db.commit()
        assert result.is_new is False
        assert result.price_changed is False
        assert len(_rows(db)) == 1
        assert len(_history(db)) == 1

    def test_last_seen_bumped_first_seen_kept(self, db):
        upsert_listing(db, _listing(), now=T0)
        upsert_listing(db, _listing(), now=T1)
        db.commit()
        row = _rows(db)[0]
        assert row.first_seen_at == T0
        assert row.last_seen_at == T1

    def test_price_decrease(self, db):
        upsert_listing(db, _listing(price=185000), now=T0)
        result = upsert_listing(db, _listing(price=175000, price_per_sqm=2059), now=T1)
        db.commit()
        assert result.price_changed is True
        row = _rows(db)[0]
        assert row.price == 175000
        assert row.previous_price == 185000
        assert row.last_price_change_at == T1
        assert row.price_per_sqm == 2059
        assert [h.change_type for h in _history(db)] == ["initial", "decrease"]

    def test_price_increase(self, db):
        upsert_listing(db, _listing(price=185000), now=T0)
        upsert_listing(db, _listing(price=190000), now=T1)
        db.commit()
        assert _history(db)[-1].change_type == "increase"
        assert _history(db)[-1].price == 190000

    def test_first_known_price_counts_as_increase(self, db):
        upsert_listing(db, _listing(price=None, price_per_sqm=None), now=T0)
        result = upsert_listing(db, _listing(price=150000), now=T1)
        db.commit()
        assert result.price_changed is True
        assert _history(db)[0].change_type == "increase"

    def test_missing_price_keeps_known_price(self, db):
        upsert_listing(db, _listing(price=185000), now=T0)
        result = upsert_listing(db, _listing(price=None, price_per_sqm=None), now=T1)
        db.commit()
        assert result.price_changed is False
        row = _rows(db)[0]
        assert row.price == 185000
        assert row.price_per_sqm == 2176
        assert row.last_price_change_at is None

    def test_attributes_refreshed(self, db):
        upsert_listing(db, _listing(title="Old title"), now=T0)
        upsert_listing(db, _listing(title="New title", bedrooms=2), now=T1)
        db.commit()
        row = _rows(db)[0]
        assert row.title == "New title"
        assert row.bedrooms == 2

    def test_reactivates_inactive_listing(self, db):
        upsert_listing(db, _listing(), now=T0)
        _rows(db)[0].is_active = False
        db.commit()
        upsert_listing(db, _listing(), now=T1)
        db.commit()
        assert _rows(db)[0].is_active is True


class TestConcurrentInsert:

    def test_unique_violation_falls_back_to_update(self, db):
        """The existence check misses a row another writer just inserted."""
        upsert_listing(db, _listing(price=185000), now=T0)
        db.commit()

        real_find = reconciler._find_listing
        calls = []

        def stale_find(*args):
            calls.append(args)
            return None if len(calls) == 1 else real_find(*args)

        with patch("marketintel.reconciler._find_listing", side_effect=stale_find):
            result = upsert_listing(db, _listing(price=170000), now=T1)
        db.commit()

        assert result.is_new is False
        assert result.price_changed is True
        rows = _rows(db)
        assert len(rows) == 1
        assert rows[0].price == 170000


# ---------------------------------------------------------------------------
# deactivate_stale_listings()
# ---------------------------------------------------------------------------

class TestDeactivateStale:

    def _seed(self, db, ids, **overrides):
        for source_id in ids:
            upsert_listing(db, _listing(source_id, **overrides), now=T0)
        db.commit()

    def test_deactivates_exactly_unseen(self, db):
        self._seed(db, ["a", "b", "c"])
        count = deactivate_stale_listings(db, "org-1", "spitogatos", {"a", "b"})
        db.commit()
        assert count == 1
        assert {r.source_listing_id: r.is_active for r in _rows(db)} == {
            "a": True, "b": True, "c": False,
        }

    def test_second_call_is_noop(self, db):
        self._seed(db, ["a", "b"])
        deactivate_stale_listings(db, "org-1", "spitogatos", ["a"])
        assert deactivate_stale_listings(db, "org-1", "spitogatos", ["a"]) == 0

    def test_empty_seen_set_is_noop(self, db):
        self._seed(db, ["a", "b"])
        assert deactivate_stale_listings(db, "org-1", "spitogatos", set()) == 0
        db.commit()
        assert all(r.is_active for r in _rows(db))

    def test_scoped_to_org_and_platform(self, db):
        self._seed(db, ["a", "b"])
        self._seed(db, ["b"], platform="xe_gr")
        self._seed(db, ["b"], organization_id="org-2")
        deactivate_stale_listings(db, "org-1", "spitogatos", ["a"])
        db.commit()
        assert [r.is_active for r in _rows(db, platform="xe_gr")] == [True]
        assert [r.is_active for r in _rows(db, organization_id="org-2")] == [True]

    def test_rows_never_deleted(self, db):
        self._seed(db, ["a", "b"])
        deactivate_stale_listings(db, "org-1", "spitogatos", ["a"])
        db.commit()
        assert len(_rows(db)) == 2

    def test_seen_ids_compared_as_strings(self, db):
        self._seed(db, ["101", "102"])
        assert deactivate_stale_listings(db, "org-1", "spitogatos", [101, 102]) == 0

    def test_session_state_reflects_update(self, db):
        self._seed(db, ["a", "b"])
        row_b = _rows(db, source_listing_id="b")[0]
        deactivate_stale_listings(db, "org-1", "spitogatos", ["a"])
        assert row_b.is_active is False
