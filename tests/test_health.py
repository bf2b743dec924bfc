from datetime import datetime, timedelta, timezone

import pytest

from vplan.schemas import FetchLogEntry
from vplan.services import scheduler
from vplan.services.health import check_disk_writable, compute_health, scrape_due

from conftest import RecordingNotifier

NOW = datetime(2025, 9, 2, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_never_fetched_is_not_stale_but_due(store):
    health = await compute_health(store, now=NOW)
    assert health.last_successful_fetch is None
    assert health.age_hours is None
    assert health.stale is False
    assert health.max_pages == 99
    assert await scrape_due(store, now=NOW) is True


@pytest.mark.asyncio
async def test_recent_success_is_fresh(store):
    await store.record_fetch(FetchLogEntry(timestamp=NOW - timedelta(hours=2), success=True))
    await store.record_fetch(FetchLogEntry(timestamp=NOW - timedelta(hours=1), success=False))

    health = await compute_health(store, now=NOW)
    assert health.age_hours == 2.0
    assert health.stale is False
    assert await scrape_due(store, now=NOW) is False


@pytest.mark.asyncio
async def test_old_success_is_stale(store):
    await store.record_fetch(FetchLogEntry(timestamp=NOW - timedelta(hours=30), success=True))
    health = await compute_health(store, now=NOW)
    assert health.stale is True
    assert await scrape_due(store, now=NOW) is True


@pytest.mark.asyncio
async def test_run_if_due_skips_fresh_data(store, monkeypatch):
    monkeypatch.setattr("vplan.database._store", store)
    await store.record_fetch(FetchLogEntry(success=True, pages_fetched=99))
    assert await scheduler.run_if_due() is None


@pytest.mark.asyncio
async def test_run_if_due_scrapes_stale_data(store, monkeypatch):
    monkeypatch.setattr("vplan.database._store", store)
    calls = []

    async def fake_run_scrape(s, notifier, triggered_by="manual"):
        calls.append(triggered_by)
        raise RuntimeError("upstream down")

    monkeypatch.setattr("vplan.services.ingest.run_scrape", fake_run_scrape)
    assert await scheduler.run_if_due() is False
    assert calls == ["scheduler"]


@pytest.mark.asyncio
async def test_disk_write_check_passes(tmp_path):
    notifier = RecordingNotifier()
    assert await check_disk_writable(notifier, tmp_path) is True
    assert list(tmp_path.iterdir()) == []
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_disk_write_failure_alerts(tmp_path):
    notifier = RecordingNotifier()
    assert await check_disk_writable(notifier, tmp_path / "missing") is False
    severity, message, error = notifier.calls[0]
    assert severity == "error"
    assert message.startswith("Disk write test failed")
    assert isinstance(error, OSError)
