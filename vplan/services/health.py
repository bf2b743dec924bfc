from __future__ import annotations

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog

from vplan.config import settings
from vplan.schemas import FetchLogEntry, HealthResponse
from vplan.services.alerts import AlertNotifier
from vplan.storage.base import PlanStore

log = structlog.get_logger(__name__)


def age_hours(last: Optional[FetchLogEntry], now: Optional[datetime] = None) -> Optional[float]:
    if last is None:
        return None
    now = now or datetime.now(timezone.utc)
    return (now - last.timestamp).total_seconds() / 3600


async def compute_health(store: PlanStore, now: Optional[datetime] = None) -> HealthResponse:
    last = await store.last_successful_fetch()
    age = age_hours(last, now)
    return HealthResponse(
        last_successful_fetch=last.timestamp if last else None,
        age_hours=round(age, 2) if age is not None else None,
        # no history is not stale here; scrape_due handles that case
        stale=age is not None and age > settings.PLAN_STALE_AFTER_HOURS,
        max_pages=settings.PLAN_MAX_PAGES,
    )


async def scrape_due(store: PlanStore, now: Optional[datetime] = None) -> bool:
    """True when no run succeeded within SCRAPE_INTERVAL_HOURS."""
    age = age_hours(await store.last_successful_fetch(), now)
    return age is None or age >= settings.SCRAPE_INTERVAL_HOURS


async def check_disk_writable(
    notifier: AlertNotifier, directory: Optional[Path] = None
) -> bool:
    """Write and remove a 1 KiB scratch file; alert when the disk refuses it."""
    target = Path(directory or tempfile.gettempdir()) / "vp_disk_test.tmp"
    try:
        target.write_bytes(b"x" * 1024)
        target.unlink()
    except OSError as exc:
        log.error("disk.write_check.failed", path=str(target), error=str(exc))
        await notifier.notify(
            "Disk write test failed, possible read-only or full disk.",
            severity="error",
            component="server",
            error=exc,
        )
        return False
    return True
