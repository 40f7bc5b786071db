import secrets
from typing import Callable, Optional

import httpx
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from marketintel.api.settings import Settings, get_settings
from marketintel.db.session import SessionLocal
from marketintel.platforms.fetcher import new_client
from marketintel.scheduler.cycle import CycleOptions

# auto_error=False: a missing header must reach the check below, which may be disabled
bearer = HTTPBearer(auto_error=False)


def _check_bearer(credentials: Optional[HTTPAuthorizationCredentials], expected: str) -> None:
    """Constant-time bearer comparison. An empty expected value disables the check."""
    if not expected:
        return
    supplied = credentials.credentials if credentials else ""
    if not secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


def require_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    settings: Settings = Depends(get_settings),
) -> None:
    """Guard for the scheduler trigger endpoint."""
    _check_bearer(credentials, settings.cron_secret)


def require_admin_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    settings: Settings = Depends(get_settings),
) -> None:
    """Guard for the /market-intel admin routes."""
    _check_bearer(credentials, settings.admin_token)


def get_cycle_options(settings: Settings = Depends(get_settings)) -> CycleOptions:
    return CycleOptions(
        enabled=settings.market_intel_enabled,
        budget_seconds=settings.scrape_budget_seconds,
    )


def get_session_factory() -> Callable[[], Session]:
    """Session factory handed to the orchestrator, which opens its own sessions."""
    return SessionLocal


def get_client_factory() -> Callable[[], httpx.Client]:
    return new_client
