from __future__ import annotations
from datetime import timezone
from typing import List, Optional
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from vplan.models import FetchLog
from vplan.schemas import FetchLogEntry


def _to_entry(row: FetchLog) -> FetchLogEntry:
    ts = row.timestamp
    if ts.tzinfo is None:  # SQLite hands back naive datetimes
        ts = ts.replace(tzinfo=timezone.utc)
    return FetchLogEntry(
        timestamp=ts,
        success=bool(row.success),
        error=row.error,
        pages_fetched=row.pages_fetched,
    )


class FetchLogRepository:
    def __init__(self, db: AsyncSession, retention: int = 500):
        self.db = db
        self.retention = retention

    async def record(self, entry: FetchLogEntry) -> None:
        self.db.add(
            FetchLog(
                timestamp=entry.timestamp,
                success=entry.success,
                error=entry.error,
                pages_fetched=entry.pages_fetched,
            )
        )
        await self.db.flush()

        # Oldest rows beyond the retention window are dropped
        cutoff = (
            await self.db.execute(
                select(FetchLog.id)
                .order_by(FetchLog.id.desc())
                .offset(self.retention)
                .limit(1)
            )
        ).scalar_one_or_none()
        if cutoff is not None:
            await self.db.execute(delete(FetchLog).where(FetchLog.id <= cutoff))

    async def recent(self, limit: int = 50) -> List[FetchLogEntry]:
        rows = await self.db.execute(
            select(FetchLog)
            .order_by(FetchLog.id.desc())
            .limit(limit)
        )
        return [_to_entry(r) for r in rows.scalars().all()]

    async def last_successful(self) -> Optional[FetchLogEntry]:
        row = (
            await self.db.execute(
                select(FetchLog)
                .where(FetchLog.success.is_(True))
                .order_by(FetchLog.id.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
        return _to_entry(row) if row is not None else None
