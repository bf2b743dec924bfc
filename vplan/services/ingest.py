from __future__ import annotations

import time
from datetime import date
from typing import List, Optional

import httpx
import structlog

from vplan.cache import invalidate_pattern
from vplan.config import settings
from vplan.schemas import ChangeRecord, FetchLogEntry, IngestResult, ScrapeResponse
from vplan.services.alerts import AlertNotifier
from vplan.services.fetcher import fetch_pages
from vplan.services.parser import parse_page
from vplan.storage.base import PlanStore

log = structlog.get_logger(__name__)


async def fetch_all_plans(
    page_from: int = 1,
    page_to: Optional[int] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    today: Optional[date] = None,
) -> IngestResult:
    """
    Fetch and parse every page in ``[page_from, page_to]``.

    ``pages_fetched`` counts the indices attempted, not the ones that
    answered. Nothing is persisted here.
    """
    page_to = page_to if page_to is not None else settings.PLAN_MAX_PAGES
    indices = list(range(page_from, page_to + 1))
    results = await fetch_pages(indices, client=client)

    entries: List[ChangeRecord] = []
    for result in results:
        if not result.ok:
            continue
        try:
            entries.extend(parse_page(result.html, result.page, today))
        except Exception as exc:
            log.error("parse.page.failed", page=result.page, error=str(exc))

    log.info(
        "ingest.fetched",
        attempted=len(indices),
        succeeded=sum(1 for r in results if r.ok),
        parsed=len(entries),
    )
    return IngestResult(entries=entries, pages_fetched=len(indices))


async def run_scrape(
    store: PlanStore,
    notifier: Optional[AlertNotifier] = None,
    page_from: int = 1,
    page_to: Optional[int] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    triggered_by: str = "manual",
) -> ScrapeResponse:
    """
    One complete ingestion run: fetch, append, log the attempt, alert.

    A failure in fetching or appending is recorded as a failed fetch-log
    entry and re-raised; alerts never affect the outcome.
    """
    notifier = notifier or AlertNotifier()
    t0 = time.monotonic()
    try:
        result = await fetch_all_plans(page_from, page_to, client=client)
        inserted = await store.append(result.entries)
    except Exception as exc:
        log.error("ingest.failed", error=str(exc), triggered_by=triggered_by)
        await store.record_fetch(FetchLogEntry(success=False, error=str(exc), pages_fetched=0))
        await notifier.notify("Scrape failed", severity="error", component="scraper", error=exc)
        raise

    await store.record_fetch(FetchLogEntry(success=True, pages_fetched=result.pages_fetched))
    ms = int((time.monotonic() - t0) * 1000)
    if inserted:
        await invalidate_pattern()

    log.info(
        "ingest.complete",
        parsed=len(result.entries),
        inserted=inserted,
        pages=result.pages_fetched,
        duration_ms=ms,
        triggered_by=triggered_by,
    )
    if inserted == 0:
        await notifier.notify(
            "Scrape completed but no new entries.",
            severity="warn",
            component="scraper",
            extra={"parsed": len(result.entries), "pagesFetched": result.pages_fetched},
        )
    else:
        await notifier.notify(
            "Scrape success.",
            severity="info",
            component="scraper",
            extra={
                "inserted": inserted,
                "parsed": len(result.entries),
                "pagesFetched": result.pages_fetched,
                "durationMs": ms,
            },
        )

    return ScrapeResponse(
        parsed=len(result.entries),
        inserted=inserted,
        pages_fetched=result.pages_fetched,
        duration_ms=ms,
    )
