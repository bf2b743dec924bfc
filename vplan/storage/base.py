"""
Persistence contract for change records and the fetch log.

Two backends implement it: ``EmbeddedStore`` (single SQLite file, local or
single-instance use) and ``NetworkStore`` (PostgreSQL, hosted or
multi-instance use). Both rely on the ``uq_entry`` unique constraint for
deduplication; the application never re-checks identity itself.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, List, Optional, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.schema import CreateIndex, CreateTable
from sqlalchemy.sql.dml import Insert

from vplan.database import Base
from vplan.exceptions import StorageError
from vplan.repositories.entries import EntryRepository
from vplan.repositories.fetch_log import FetchLogRepository
from vplan.schemas import ChangeRecord, EntryQuery, FetchLogEntry, Stats

log = structlog.get_logger(__name__)


class PlanStore(ABC):
    backend: str = "abstract"

    @abstractmethod
    async def init_schema(self) -> None:
        """Create tables and indexes if absent. Safe to call repeatedly."""

    @abstractmethod
    async def append(self, records: List[ChangeRecord]) -> int:
        """Insert new records in one transaction, returning how many were new."""

    @abstractmethod
    async def query(self, q: EntryQuery) -> Tuple[List[ChangeRecord], int]:
        """A page of records plus the total count matching the filter."""

    @abstractmethod
    async def distinct_classes(self) -> List[str]: ...

    @abstractmethod
    async def stats(self) -> Stats: ...

    @abstractmethod
    async def record_fetch(self, entry: FetchLogEntry) -> None: ...

    @abstractmethod
    async def recent_fetches(self, limit: int = 50) -> List[FetchLogEntry]: ...

    @abstractmethod
    async def last_successful_fetch(self) -> Optional[FetchLogEntry]: ...

    @abstractmethod
    async def close(self) -> None: ...


class SqlPlanStore(PlanStore):
    """Shared SQLAlchemy implementation; subclasses supply engine and dialect insert."""

    insert: Callable[..., Insert]

    def __init__(self, engine: AsyncEngine, fetch_log_retention: int = 500):
        self.engine = engine
        self.fetch_log_retention = fetch_log_retention
        self.SessionLocal = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def _transaction(self, op: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.SessionLocal() as session:
                async with session.begin():
                    yield session
        except (SQLAlchemyError, OSError) as exc:
            log.error("store.failed", op=op, backend=self.backend, error=str(exc))
            raise StorageError(
                f"{op} failed: {exc}", context={"backend": self.backend, "op": op}
            ) from exc

    async def _create_schema(self, conn: AsyncConnection) -> None:
        for table in Base.metadata.sorted_tables:
            await conn.execute(CreateTable(table, if_not_exists=True))
            for index in sorted(table.indexes, key=lambda i: i.name):
                await conn.execute(CreateIndex(index, if_not_exists=True))

    async def init_schema(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await self._create_schema(conn)
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"schema setup failed: {exc}", context={"backend": self.backend}) from exc
        log.info("store.schema.ready", backend=self.backend)

    async def append(self, records: List[ChangeRecord]) -> int:
        if not records:
            return 0
        async with self._transaction("append") as session:
            inserted = await EntryRepository(session, self.insert).append(records)
        log.info("store.append", backend=self.backend, attempted=len(records), inserted=inserted)
        return inserted

    async def query(self, q: EntryQuery) -> Tuple[List[ChangeRecord], int]:
        async with self._transaction("query") as session:
            return await EntryRepository(session, self.insert).query(q)

    async def distinct_classes(self) -> List[str]:
        async with self._transaction("distinct_classes") as session:
            return await EntryRepository(session, self.insert).distinct_classes()

    async def stats(self) -> Stats:
        async with self._transaction("stats") as session:
            return await EntryRepository(session, self.insert).stats()

    async def record_fetch(self, entry: FetchLogEntry) -> None:
        async with self._transaction("record_fetch") as session:
            await FetchLogRepository(session, self.fetch_log_retention).record(entry)

    async def recent_fetches(self, limit: int = 50) -> List[FetchLogEntry]:
        async with self._transaction("recent_fetches") as session:
            return await FetchLogRepository(session, self.fetch_log_retention).recent(limit)

    async def last_successful_fetch(self) -> Optional[FetchLogEntry]:
        async with self._transaction("last_successful_fetch") as session:
            return await FetchLogRepository(session, self.fetch_log_retention).last_successful()

    async def close(self) -> None:
        await self.engine.dispose()
