"""
Database bootstrap: creates the market intel tables and, optionally, a demo
organization config.

Idempotent: create_all skips existing tables, and the demo config is only
inserted when the organization has none.

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --demo-org acme
"""
import argparse

from marketintel.config_store import check_schema_exists, get_org_config
from marketintel.db.models import Base, OrgScrapeConfig
from marketintel.db.session import SessionLocal, engine

# A small, cheap search: two pages of Athens sale listings per platform
DEMO_CONFIG = {
    "is_enabled": True,
    "status": "ACTIVE",
    "platforms": ["spitogatos", "xe_gr", "tospitimou"],
    "target_areas": ["Κολωνάκι"],
    "target_municipalities": ["Αθήνα"],
    "property_types": ["APARTMENT"],
    "transaction_types": ["sale"],
    "min_price": 100000,
    "max_price": 600000,
    "max_pages_per_platform": 2,
    "scrape_frequency": "DAILY",
    "next_scrape_due": None,
}


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the market intel tables")
    parser.add_argument(
        "--demo-org",
        metavar="ORG_ID",
        default=None,
        help="Also insert an enabled demo scrape config for this organization",
    )
    args = parser.parse_args()

    existed = check_schema_exists(engine)
    Base.metadata.create_all(engine)
    print("Schema already present." if existed else "Schema created.")

    if args.demo_org:
        db = SessionLocal()
        try:
            if get_org_config(db, args.demo_org) is not None:
                print(f"  SKIP  config for {args.demo_org} already exists")
            else:
                db.add(OrgScrapeConfig(organization_id=args.demo_org, **DEMO_CONFIG))
                db.commit()
                print(f"  ADD   demo config for {args.demo_org} (due now)")
        finally:
            db.close()


if __name__ == "__main__":
    main()
