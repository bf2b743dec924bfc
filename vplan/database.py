from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy.orm import DeclarativeBase
import structlog
from vplan.config import Settings, settings
from vplan.exceptions import StorageError

if TYPE_CHECKING:
    from vplan.storage.base import PlanStore

log = structlog.get_logger(__name__)

_store: Optional["PlanStore"] = None


class Base(DeclarativeBase):
    pass


def create_store(cfg: Settings = settings) -> "PlanStore":
    """DATABASE_URL selects the networked backend, otherwise the embedded file."""
    from vplan.storage.postgres import NetworkStore
    from vplan.storage.sqlite import EmbeddedStore

    if cfg.DATABASE_URL:
        return NetworkStore(
            cfg.ASYNC_DATABASE_URL,
            pool_size=cfg.DB_POOL_SIZE,
            max_overflow=cfg.DB_MAX_OVERFLOW,
            fetch_log_retention=cfg.FETCH_LOG_RETENTION,
        )
    return EmbeddedStore(cfg.SQLITE_PATH, fetch_log_retention=cfg.FETCH_LOG_RETENTION)


async def init_store() -> "PlanStore":
    global _store
    if _store is None:
        _store = create_store()
        await _store.init_schema()
        log.info("database.initialized", backend=_store.backend)
    return _store


async def close_store() -> None:
    global _store
    if _store is not None:
        await _store.close()
        _store = None
        log.info("database.closed")


def get_store() -> "PlanStore":
    if _store is None:
        raise StorageError("Store not initialized")
    return _store
