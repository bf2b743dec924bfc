from __future__ import annotations

import json
from pathlib import Path
from typing import List

import structlog
from pydantic import ValidationError
from sqlalchemy import event
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import create_async_engine

from vplan.schemas import ChangeRecord
from vplan.storage.base import SqlPlanStore

log = structlog.get_logger(__name__)

# field names used by the legacy JSON dump that differ from ours
_LEGACY_KEYS = {"type": "changeType", "text": "note"}


def _set_pragmas(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


class EmbeddedStore(SqlPlanStore):
    """Single-file SQLite store for local or single-instance operation."""

    backend = "sqlite"
    insert = staticmethod(sqlite_insert)

    def __init__(self, path: Path | str, fetch_log_retention: int = 500):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_async_engine(f"sqlite+aiosqlite:///{self.path}")
        event.listen(engine.sync_engine, "connect", _set_pragmas)
        super().__init__(engine, fetch_log_retention=fetch_log_retention)

    @property
    def legacy_json(self) -> Path:
        return self.path.parent / "entries.json"

    async def init_schema(self) -> None:
        await super().init_schema()
        await self.import_legacy_json()

    async def import_legacy_json(self) -> int:
        """
        One-time import of the old ``entries.json`` dump sitting next to the
        database file. Goes through the normal dedup append, then renames the
        file so it is not picked up again.
        """
        src = self.legacy_json
        if not src.exists():
            return 0
        raw = src.read_text(encoding="utf-8")
        if not raw.strip():
            return 0
        parsed = json.loads(raw)
        items = parsed if isinstance(parsed, list) else parsed.get("entries", [])

        records: List[ChangeRecord] = []
        for item in items:
            data = {_LEGACY_KEYS.get(k, k): v for k, v in item.items()}
            try:
                records.append(ChangeRecord.model_validate(data))
            except ValidationError as exc:
                # rows stored under the old "unknown" day placeholder land here
                log.warning("store.legacy.skipped", error=str(exc).splitlines()[0])

        inserted = await self.append(records)
        src.rename(src.with_name(src.name + ".migrated"))
        log.info("store.legacy.imported", parsed=len(records), inserted=inserted)
        return inserted
