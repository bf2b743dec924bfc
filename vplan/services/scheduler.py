from __future__ import annotations

from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from vplan.config import settings

log = structlog.get_logger(__name__)
_scheduler: AsyncIOScheduler | None = None


async def run_if_due(triggered_by: str = "scheduler") -> Optional[bool]:
    """
    Scrape only when the last successful run is older than
    SCRAPE_INTERVAL_HOURS. Returns None when skipped, else the run's success.
    """
    from vplan.database import get_store
    from vplan.services.alerts import get_notifier
    from vplan.services.health import scrape_due
    from vplan.services.ingest import run_scrape

    store = get_store()
    if not await scrape_due(store):
        log.info("scheduler.refresh.skipped", interval_hours=settings.SCRAPE_INTERVAL_HOURS)
        return None
    try:
        result = await run_scrape(store, get_notifier(), triggered_by=triggered_by)
    except Exception as exc:
        log.error("scheduler.refresh.failed", error=str(exc))
        return False
    log.info("scheduler.refresh.done", inserted=result.inserted, parsed=result.parsed)
    return True


def start_scheduler() -> None:
    global _scheduler
    if not settings.SCHEDULER_ENABLED:
        log.info("scheduler.disabled")
        return

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        run_if_due,
        trigger=IntervalTrigger(minutes=settings.SCHEDULER_CHECK_MINUTES),
        id="scrape_if_due",
        replace_existing=True,
        max_instances=1,
    )
    _scheduler.start()
    log.info(
        "scheduler.started",
        check_minutes=settings.SCHEDULER_CHECK_MINUTES,
        interval_hours=settings.SCRAPE_INTERVAL_HOURS,
    )


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        log.info("scheduler.stopped")

