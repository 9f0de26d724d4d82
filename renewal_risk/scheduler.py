"""Background scheduler — periodic renewal risk refresh.

APScheduler AsyncIOScheduler, started from the FastAPI lifespan.
  - risk_refresh: every RISK_REFRESH_INTERVAL_MIN minutes — recomputes account
    risk, syncs task/duplicate/bulk notifications and rewarms the cache

Each job opens its own SessionLocal() and closes it when done.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

log = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(timezone="UTC")


def configure_scheduler() -> None:
    """Register all jobs. Call once, before scheduler.start()."""
    from .config import settings

    if not settings.scheduler_enabled:
        log.info("Scheduler disabled — no jobs registered")
        return

    scheduler.add_job(
        _job_risk_refresh,
        IntervalTrigger(minutes=settings.risk_refresh_interval_min),
        id="risk_refresh",
        name="Renewal risk refresh",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    log.info("Scheduler configured — risk refresh every %d min", settings.risk_refresh_interval_min)


async def _job_risk_refresh():
    """Run the batch risk refresh in a fresh session."""
    from .database import SessionLocal
    from .services.risk_refresh_service import run_risk_refresh

    db = SessionLocal()
    try:
        report = run_risk_refresh(db)
        if report["errors"]:
            log.warning("Risk refresh finished with %d errors", report["errors"])
    except Exception as e:
        log.error(f"Risk refresh job error: {e}")
        db.rollback()
    finally:
        db.close()
