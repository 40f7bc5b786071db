"""
Scrape log recorder: one ScrapeLog row per (organization, platform, run).

Recording is best-effort. Every call opens its own short-lived session, and
any failure is logged and swallowed so that bookkeeping problems can never
abort a scrape. A None log id (open_log failed) turns later calls into no-ops.
"""
import logging
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from marketintel.db.models import ScrapeLog, utcnow

logger = logging.getLogger("marketintel.scrape_log")

COUNTER_FIELDS = (
    "listings_found",
    "listings_new",
    "listings_updated",
    "listings_deactivated",
    "pages_scraped",
)
FINAL_STATUSES = {"success", "partial", "failed"}
MAX_LOG_LIMIT = 100


class ScrapeLogRecorder:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def open_log(self, organization_id: str, platform: str) -> Optional[int]:
        """Create a 'running' log row. Returns its id, or None if it could not be written."""
        db = None
        try:
            db = self._session_factory()
            log = ScrapeLog(
                organization_id=organization_id,
                platform=platform,
                started_at=utcnow(),
                status="running",
                errors=[],
            )
            db.add(log)
            db.commit()
            return log.id
        except Exception:
            logger.exception(f"Could not open scrape log for {organization_id}/{platform}")
            return None
        finally:
            if db is not None:
                db.close()

    def update_log(self, log_id: Optional[int], **counts: int) -> None:
        """Add counts to the log's counters, e.g. update_log(log_id, listings_new=3)."""
        if log_id is None:
            return
        db = None
        try:
            db = self._session_factory()
            log = db.get(ScrapeLog, log_id)
            if log is None or log.completed_at is not None:
                return
            for field, delta in counts.items():
                if field not in COUNTER_FIELDS:
                    raise ValueError(f"Unknown scrape log counter: {field}")
                setattr(log, field, (getattr(log, field) or 0) + delta)
            db.commit()
        except Exception:
            logger.exception(f"Could not update scrape log {log_id}")
        finally:
            if db is not None:
                db.close()

    def close_log(
        self,
        log_id: Optional[int],
        final_status: str,
        errors: list[str],
        duration_ms: int,
    ) -> None:
        """Finalize the log. A log that is already closed is left untouched."""
        if log_id is None:
            return
        db = None
        try:
            if final_status not in FINAL_STATUSES:
                raise ValueError(f"Invalid final scrape status: {final_status}")
            db = self._session_factory()
            log = db.get(ScrapeLog, log_id)
            if log is None or log.completed_at is not None:
                return
            log.status = final_status
            log.errors = list(errors)
            log.duration_ms = duration_ms
            log.completed_at = utcnow()
            db.commit()
        except Exception:
            logger.exception(f"Could not close scrape log {log_id}")
        finally:
            if db is not None:
                db.close()


def recent_logs(
    db: Session,
    organization_id: str,
    platform: Optional[str] = None,
    limit: int = 20,
) -> list[ScrapeLog]:
    """Newest-first scrape history for an organization. limit is clamped to 1..100."""
    limit = max(1, min(limit, MAX_LOG_LIMIT))
    stmt = select(ScrapeLog).where(ScrapeLog.organization_id == organization_id)
    if platform:
        stmt = stmt.where(ScrapeLog.platform == platform)
    stmt = stmt.order_by(ScrapeLog.started_at.desc(), ScrapeLog.id.desc()).limit(limit)
    return list(db.execute(stmt).scalars())
