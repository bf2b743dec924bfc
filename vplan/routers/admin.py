from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from vplan.auth import require_alert_token, require_trigger_token
from vplan.database import get_store
from vplan.exceptions import AppError
from vplan.schemas import AlertRequest, AlertResponse, HealthResponse, ScrapeResponse
from vplan.services.alerts import AlertNotifier, get_notifier
from vplan.services.health import compute_health
from vplan.services.ingest import run_scrape
from vplan.storage.base import PlanStore

router = APIRouter(prefix="/api", tags=["admin"])


@router.get("/health", response_model=HealthResponse)
async def health(store: PlanStore = Depends(get_store)):
    """Unauthenticated so uptime monitors can watch staleness."""
    return await compute_health(store)


@router.post(
    "/scrape",
    response_model=ScrapeResponse,
    dependencies=[Depends(require_trigger_token)],
)
async def trigger_scrape(
    page_from: int = Query(1, alias="from", ge=1),
    page_to: Optional[int] = Query(None, alias="to", ge=1),
    store: PlanStore = Depends(get_store),
    notifier: AlertNotifier = Depends(get_notifier),
):
    """Blocking run; the failed attempt is already in the fetch log when this errors."""
    try:
        return await run_scrape(store, notifier, page_from, page_to, triggered_by="manual")
    except AppError:
        raise
    except Exception as exc:
        raise AppError(f"Scrape failed: {exc}", context={"op": "scrape"}) from exc


@router.post(
    "/alert",
    response_model=AlertResponse,
    dependencies=[Depends(require_alert_token)],
)
async def trigger_alert(
    payload: Optional[AlertRequest] = Body(None),
    notifier: AlertNotifier = Depends(get_notifier),
):
    """Manual alert for uptime monitors; guarded by ``?token=`` only when ALERT_TOKEN is set."""
    payload = payload or AlertRequest()
    await notifier.notify(
        payload.message,
        severity=payload.severity,
        component=payload.component,
        extra=payload.extra,
    )
    return AlertResponse()
