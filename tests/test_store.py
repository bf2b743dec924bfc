import json
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from vplan.exceptions import StorageError
from vplan.repositories.entries import EntryRepository
from vplan.schemas import EntryQuery, FetchLogEntry, normalize_class_key
from vplan.storage.sqlite import EmbeddedStore

from conftest import make_record


def test_normalize_class_key():
    assert normalize_class_key(["5a", "5B"]) == "5A,5B"
    assert normalize_class_key(["5B", "5A"]) == "5A,5B"
    assert normalize_class_key([" 6c ", "6C", ""]) == "6C"


@pytest.mark.asyncio
async def test_append_is_idempotent(store):
    batch = [make_record(lesson=str(i)) for i in range(1, 4)]
    assert await store.append(batch) == 3
    assert await store.append(batch) == 0
    _, total = await store.query(EntryQuery())
    assert total == 3


@pytest.mark.asyncio
async def test_class_order_and_case_collapse(store):
    assert await store.append([make_record(classes=["5a", "5B"])]) == 1
    assert await store.append([make_record(classes=["5B", "5A"])]) == 0
    entries, _ = await store.query(EntryQuery())
    assert entries[0].classes == ["5A", "5B"]


@pytest.mark.asyncio
async def test_records_differing_only_in_room_are_both_kept(store):
    assert await store.append([make_record(room="101"), make_record(room="102")]) == 2


@pytest.mark.asyncio
async def test_duplicates_within_one_batch_collapse(store):
    assert await store.append([make_record(), make_record()]) == 1


@pytest.mark.asyncio
async def test_absent_identity_fields_still_dedupe(store):
    rec = make_record(subject=None, room=None, change_type=None)
    assert await store.append([rec]) == 1
    assert await store.append([rec]) == 0
    entries, _ = await store.query(EntryQuery())
    assert entries[0].subject is None
    assert entries[0].room is None
    assert entries[0].change_type is None


@pytest.mark.asyncio
async def test_class_substring_query(store):
    await store.append([
        make_record(classes=["6c"], lesson="1"),
        make_record(classes=["5a", "5b"], lesson="2"),
    ])
    for token in ("6C", "c", "6c"):
        entries, total = await store.query(EntryQuery(class_substring=token))
        assert total == 1
        assert entries[0].classes == ["6C"]

    _, total = await store.query(EntryQuery(class_substring="5B"))
    assert total == 1
    _, total = await store.query(EntryQuery(class_substring="%"))
    assert total == 0


@pytest.mark.asyncio
async def test_pagination_reports_total(store):
    await store.append([make_record(lesson=str(i)) for i in range(1, 6)])

    pages = []
    for offset in (0, 2, 4):
        entries, total = await store.query(EntryQuery(limit=2, offset=offset))
        assert total == 5
        pages.append([e.lesson for e in entries])
    assert pages == [["1", "2"], ["3", "4"], ["5"]]


@pytest.mark.asyncio
async def test_query_sorted_by_day_then_lesson(store):
    await store.append([
        make_record(day=date(2025, 9, 2), lesson="1"),
        make_record(day=date(2025, 9, 1), lesson="3"),
        make_record(day=date(2025, 9, 1), lesson="2"),
    ])
    asc, _ = await store.query(EntryQuery())
    assert [(e.day.day, e.lesson) for e in asc] == [(1, "2"), (1, "3"), (2, "1")]
    desc, _ = await store.query(EntryQuery(sort="desc"))
    assert [(e.day.day, e.lesson) for e in desc] == [(2, "1"), (1, "3"), (1, "2")]


@pytest.mark.asyncio
async def test_query_by_day(store):
    await store.append([
        make_record(day=date(2025, 9, 1)),
        make_record(day=date(2025, 9, 2)),
    ])
    entries, total = await store.query(EntryQuery(day=date(2025, 9, 2)))
    assert total == 1
    assert entries[0].day == date(2025, 9, 2)


def test_query_limits_are_clamped():
    q = EntryQuery(limit=0, offset=-3)
    assert q.limit == 500
    assert q.offset == 0


@pytest.mark.asyncio
async def test_distinct_classes(store):
    await store.append([
        make_record(classes=["5b", "5a"], lesson="1"),
        make_record(classes=["6c"], lesson="2"),
        make_record(classes=["5a"], lesson="3"),
    ])
    assert await store.distinct_classes() == ["5A", "5B", "6C"]


@pytest.mark.asyncio
async def test_stats(store):
    empty = await store.stats()
    assert (empty.total_entries, empty.days_tracked, empty.avg_per_day) == (0, 0, 0.0)

    await store.append([
        make_record(day=date(2025, 9, 1), lesson="1"),
        make_record(day=date(2025, 9, 1), lesson="2"),
        make_record(day=date(2025, 9, 2), lesson="1"),
    ])
    stats = await store.stats()
    assert stats.total_entries == 3
    assert stats.days_tracked == 2
    assert stats.avg_per_day == 1.5


@pytest.mark.asyncio
async def test_failed_append_rolls_back_whole_batch(store, monkeypatch):
    original = EntryRepository.append

    async def append_then_fail(self, records):
        await original(self, records)
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(EntryRepository, "append", append_then_fail)
    with pytest.raises(StorageError):
        await store.append([make_record(lesson="1"), make_record(lesson="2")])

    monkeypatch.setattr(EntryRepository, "append", original)
    _, total = await store.query(EntryQuery())
    assert total == 0


@pytest.mark.asyncio
async def test_fetch_log_newest_first(store):
    t0 = datetime(2025, 9, 1, 6, 0, tzinfo=timezone.utc)
    await store.record_fetch(FetchLogEntry(timestamp=t0, success=True, pages_fetched=99))
    await store.record_fetch(
        FetchLogEntry(timestamp=t0 + timedelta(hours=6), success=False, error="boom")
    )

    recent = await store.recent_fetches()
    assert [e.success for e in recent] == [False, True]
    assert recent[0].error == "boom"
    assert recent[1].pages_fetched == 99

    last = await store.last_successful_fetch()
    assert last.timestamp == t0


@pytest.mark.asyncio
async def test_last_successful_absent_when_none_succeeded(store):
    await store.record_fetch(FetchLogEntry(success=False, error="down"))
    assert await store.last_successful_fetch() is None


@pytest.mark.asyncio
async def test_fetch_log_retention(tmp_path):
    store = EmbeddedStore(tmp_path / "log.sqlite", fetch_log_retention=3)
    await store.init_schema()
    try:
        for n in range(5):
            await store.record_fetch(FetchLogEntry(success=True, pages_fetched=n))
        recent = await store.recent_fetches(limit=10)
        assert [e.pages_fetched for e in recent] == [4, 3, 2]
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_init_schema_is_repeatable(store):
    await store.append([make_record()])
    await store.init_schema()
    assert (await store.stats()).total_entries == 1


@pytest.mark.asyncio
async def test_legacy_json_imported_once(tmp_path):
    legacy = tmp_path / "entries.json"
    legacy.write_text(json.dumps({"entries": [
        {
            "classes": ["5a"], "lesson": "1", "subject": "MA", "room": "101",
            "type": "Entfall", "text": "krank", "day": "2025-09-01", "weekday": "Montag",
            "sourcePage": "w00001.htm", "cancelled": True, "changed": False,
            "createdAt": "2025-09-01T06:00:00.000Z",
        },
        {
            "classes": ["5a"], "lesson": "2", "day": "unknown", "weekday": "unknown",
            "sourcePage": "w00001.htm", "createdAt": "2025-09-01T06:00:00.000Z",
        },
    ]}), encoding="utf-8")

    store = EmbeddedStore(tmp_path / "entries.sqlite")
    await store.init_schema()
    try:
        entries, total = await store.query(EntryQuery())
        assert total == 1
        assert entries[0].change_type == "Entfall"
        assert entries[0].note == "krank"
        assert not legacy.exists()
        assert (tmp_path / "entries.json.migrated").exists()
    finally:
        await store.close()
