"""
Shared fixtures for API integration tests.

Uses the in-memory SQLite engine from tests/conftest.py. get_db, the
settings and the factories handed to the orchestrator are overridden via
app.dependency_overrides; outbound platform HTTP is mocked with pytest-httpx.
"""
import httpx
import pytest
from fastapi.testclient import TestClient

from marketintel.api.deps import get_client_factory, get_session_factory
from marketintel.api.main import app
from marketintel.api.settings import Settings, get_settings
from marketintel.db.session import get_db

CRON_SECRET = "cron-test-secret"
ADMIN_TOKEN = "admin-test-token"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def settings():
    """Settings for the test app. Tests may mutate fields before making requests."""
    return Settings(
        cron_secret=CRON_SECRET,
        admin_token=ADMIN_TOKEN,
        market_intel_enabled=True,
        scrape_budget_seconds=55.0,
    )


@pytest.fixture()
def client(Session, settings):
    """Yield a FastAPI TestClient wired to the test database and settings."""
    def override_get_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_session_factory] = lambda: Session
    app.dependency_overrides[get_client_factory] = lambda: httpx.Client

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture()
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
