from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketintel.api.routers.cron import router as cron_router
from marketintel.api.routers.market_intel import router as market_intel_router
from marketintel.api.settings import get_settings


def create_app() -> FastAPI:
    """FastAPI application factory with CORS middleware and all routers mounted."""
    settings = get_settings()

    application = FastAPI(
        title="Market Intelligence API",
        description="Scrape trigger and admin API for competitor listing intelligence",
        version="1.0.0",
    )

    # Parse comma-separated CORS origins from settings
    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]

    application.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.get("/health", tags=["meta"])
    def health_check():
        """Smoke test endpoint -- returns status ok."""
        return {"status": "ok"}

    application.include_router(cron_router)          # /scrape, /api/cron/market-intel
    application.include_router(market_intel_router)  # /market-intel/*

    return application


# Module-level app instance for uvicorn
app = create_app()
