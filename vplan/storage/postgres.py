from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine

from vplan.storage.base import SqlPlanStore

# arbitrary constant shared by every instance racing on startup
SCHEMA_LOCK_KEY = 0x7650_6C61


class NetworkStore(SqlPlanStore):
    """PostgreSQL store for hosted, multi-instance operation."""

    backend = "postgres"
    insert = staticmethod(pg_insert)

    def __init__(
        self,
        url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        fetch_log_retention: int = 500,
    ):
        engine = create_async_engine(
            url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,         # detect stale connections
            pool_recycle=3600,
            echo=False,
        )
        super().__init__(engine, fetch_log_retention=fetch_log_retention)

    async def _create_schema(self, conn: AsyncConnection) -> None:
        # CREATE ... IF NOT EXISTS still races on the catalog; the advisory
        # lock is released when the surrounding transaction commits
        await conn.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": SCHEMA_LOCK_KEY})
        await super()._create_schema(conn)
