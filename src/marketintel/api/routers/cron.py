import logging
from typing import Callable

import httpx
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketintel.api.deps import (
    get_client_factory,
    get_cycle_options,
    get_session_factory,
    require_cron_secret,
)
from marketintel.api.schemas.scrape import CycleResultOut
from marketintel.errors import SchemaMissingError, format_error
from marketintel.scheduler.cycle import CycleOptions, run_scrape_cycle

logger = logging.getLogger("marketintel.api")

router = APIRouter(
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)


# Plain def: FastAPI runs it in the threadpool, so the blocking cycle never stalls the event loop
@router.get("/scrape", response_model=CycleResultOut)
@router.get("/api/cron/market-intel", response_model=CycleResultOut, include_in_schema=False)
def trigger_scrape(
    options: CycleOptions = Depends(get_cycle_options),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    client_factory: Callable[[], httpx.Client] = Depends(get_client_factory),
) -> CycleResultOut:
    """Run one budgeted scrape cycle over every organization that is due.

    Disabled scraping and an empty due list are normal outcomes (200,
    processed=0). A missing schema is 503; an unreachable store is 500.
    """
    try:
        result = run_scrape_cycle(
            options,
            session_factory=session_factory,
            client_factory=client_factory,
        )
    except SchemaMissingError as e:
        logger.error(f"Scrape cycle aborted: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except SQLAlchemyError as e:
        logger.error(f"Scrape cycle aborted, store unavailable: {format_error(e)}")
        raise HTTPException(status_code=500, detail="Listing store unavailable")
    return CycleResultOut.from_result(result)
