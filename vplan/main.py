import contextlib
from datetime import date, datetime, timezone

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.exceptions import HTTPException

from vplan.config import settings
from vplan.database import init_store, close_store
from vplan.cache import init_redis_pool, close_redis_pool
from vplan.exceptions import AppError, app_error_handler, http_error_handler
from vplan.logconfig import configure_logging
from vplan.middleware import LoggingMiddleware
from vplan.routers.plan import router as plan_router
from vplan.routers.admin import router as admin_router
from vplan.schemas import ChangeRecord, EntryQuery
from vplan.services.alerts import get_notifier
from vplan.services.dates import WEEKDAYS
from vplan.services.health import check_disk_writable
from vplan.services.scheduler import start_scheduler, stop_scheduler
from vplan.storage.base import PlanStore

configure_logging()
log = structlog.get_logger(__name__)


async def seed_demo_entries(store: PlanStore) -> int:
    """Two sample rows so a fresh development dashboard is not blank."""
    _, total = await store.query(EntryQuery(limit=1))
    if total:
        return 0
    today = date.today()
    weekday = WEEKDAYS[today.isoweekday() % 7]
    now = datetime.now(timezone.utc)
    inserted = await store.append([
        ChangeRecord(
            classes=["5A", "5B"], day=today, weekday=weekday, lesson="1",
            teacher="HERR A", subject="MATH", original_subject="MATH", room="101",
            change_type="Vertretung", note="Einspringen für Frau X",
            source_page="seed", created_at=now,
        ),
        ChangeRecord(
            classes=["6C"], day=today, weekday=weekday, lesson="3",
            teacher="FRAU B", subject="DE", original_subject="DE", room="202",
            change_type="Entfall", note="Krankheit", cancelled=True,
            source_page="seed", created_at=now,
        ),
    ])
    log.info("store.seeded", inserted=inserted)
    return inserted


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("app.starting", env=settings.ENVIRONMENT, version=settings.APP_VERSION)
    store = await init_store()
    await init_redis_pool()
    await check_disk_writable(get_notifier())
    if settings.ENVIRONMENT == "development":
        await seed_demo_entries(store)
    start_scheduler()
    log.info("app.ready", backend=store.backend)
    yield
    log.info("app.shutting_down")
    stop_scheduler()
    await close_redis_pool()
    await close_store()
    log.info("app.stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    lifespan=lifespan,
)

# ── Middleware (outermost first) ──────────────────────────────────────────────
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["X-Alert-Token", "Content-Type"],
)

# ── Exception handlers ────────────────────────────────────────────────────────
app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(plan_router)
app.include_router(admin_router)
