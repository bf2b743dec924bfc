from __future__ import annotations

from typing import Callable, List, Tuple

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.dml import Insert

from vplan.models import PlanEntry
from vplan.schemas import ChangeRecord, EntryQuery, Stats, split_class_key

# keeps each multi-row INSERT well below SQLite's bound-parameter limit
_CHUNK_SIZE = 200


def to_row(record: ChangeRecord) -> dict:
    return {
        "day": record.day,
        "weekday": record.weekday,
        "lesson": record.lesson or "",
        "subject": record.subject or "",
        "change_type": record.change_type or "",
        "room": record.room or "",
        "classes": record.class_key,
        "source_page": record.source_page,
        "teacher": record.teacher,
        "original_subject": record.original_subject,
        "note": record.note,
        "week_type": record.week_type,
        "color": record.color,
        "cancelled": bool(record.cancelled),
        "changed": bool(record.changed),
        "created_at": record.created_at,
    }


def to_record(row: PlanEntry) -> ChangeRecord:
    return ChangeRecord(
        classes=split_class_key(row.classes),
        day=row.day,
        weekday=row.weekday or "",
        lesson=row.lesson or "",
        teacher=row.teacher or None,
        subject=row.subject or None,
        original_subject=row.original_subject or None,
        room=row.room or None,
        change_type=row.change_type or None,
        note=row.note or None,
        week_type=row.week_type or None,
        source_page=row.source_page,
        color=row.color or None,
        cancelled=bool(row.cancelled),
        changed=bool(row.changed),
        created_at=row.created_at,
    )


class EntryRepository:
    def __init__(self, db: AsyncSession, insert: Callable[..., Insert]):
        self.db = db
        self._insert = insert

    async def append(self, records: List[ChangeRecord]) -> int:
        """
        Insert-or-ignore against the uq_entry constraint.
        Returns the number of rows actually written; the caller owns the
        transaction.
        """
        rows = [to_row(r) for r in records]
        inserted = 0
        for start in range(0, len(rows), _CHUNK_SIZE):
            chunk = rows[start:start + _CHUNK_SIZE]
            stmt = (
                self._insert(PlanEntry)
                .values(chunk)
                .on_conflict_do_nothing()
                .returning(PlanEntry.id)
            )
            result = await self.db.execute(stmt)
            inserted += len(result.all())
        return inserted

    async def query(self, q: EntryQuery) -> Tuple[List[ChangeRecord], int]:
        base = select(PlanEntry)
        count_q = select(func.count(PlanEntry.id))
        if q.day:
            base = base.where(PlanEntry.day == q.day)
            count_q = count_q.where(PlanEntry.day == q.day)
        token = (q.class_substring or "").strip().upper()
        if token:
            cond = PlanEntry.classes.contains(token, autoescape=True)
            base = base.where(cond)
            count_q = count_q.where(cond)

        direction = (lambda c: c.desc()) if q.sort == "desc" else (lambda c: c.asc())
        total = (await self.db.execute(count_q)).scalar_one()
        rows = (
            await self.db.execute(
                base.order_by(
                    direction(PlanEntry.day),
                    direction(PlanEntry.lesson),
                    direction(PlanEntry.id),
                )
                .offset(q.offset)
                .limit(q.limit)
            )
        ).scalars().all()
        return [to_record(r) for r in rows], total

    async def distinct_classes(self) -> List[str]:
        keys = (await self.db.execute(select(PlanEntry.classes).distinct())).scalars().all()
        tokens = {c for key in keys for c in split_class_key(key)}
        return sorted(tokens)

    async def stats(self) -> Stats:
        total, days = (
            await self.db.execute(
                select(func.count(PlanEntry.id), func.count(distinct(PlanEntry.day)))
            )
        ).one()
        return Stats(
            total_entries=total,
            days_tracked=days,
            avg_per_day=(total / days) if days else 0.0,
        )
