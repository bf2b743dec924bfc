import os

# Set env vars BEFORE any vplan imports trigger Settings()
os.environ.setdefault("ALERT_TOKEN", "test-trigger-token")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("DISCORD_WEBHOOK_URL", "")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("DATABASE_URL", "")

from datetime import date, datetime, timezone

import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from vplan.main import app
from vplan.database import get_store
from vplan.schemas import ChangeRecord
from vplan.services.alerts import AlertNotifier, get_notifier
from vplan.storage.sqlite import EmbeddedStore

TEST_TOKEN = "test-trigger-token"


class RecordingNotifier(AlertNotifier):
    def __init__(self):
        super().__init__("https://hooks.example/x")
        self.calls = []

    async def notify(self, message, severity="info", component=None, extra=None, error=None):
        self.calls.append((severity, message, error))
        self.last = dict(component=component, extra=extra)


SAMPLE_PAGE = """<html>
<head><meta http-equiv="Content-Type" content="text/html; charset=iso-8859-1"></head>
<body>
<div id="vertretung">
<center><div class="title">Woche A</div></center>
<a name="1">&nbsp;</a><br><br>
<p><b>25.8. Montag</b> | <a href="#2">[ Dienstag ]</a></p>
<table class="info"><tr class="info"><th class="info" colspan="2">Nachrichten zum Tag</th></tr></table>
<p></p>
<table class="subst">
<tr class="list"><th class="list">Klasse(n)</th><th class="list">Stunde</th><th class="list">Vertreter</th><th class="list">Fach</th><th class="list">(Fach)</th><th class="list">Raum</th><th class="list">Art</th><th class="list">Text</th></tr>
<tr class="list odd"><td class="list" style="background-color: #FFFFFF">5a, 5b</td><td class="list">3</td><td class="list">MÜL</td><td class="list">MA</td><td class="list">DE</td><td class="list">101</td><td class="list">Vertretung</td><td class="list">&nbsp;</td></tr>
<tr class="list even"><td class="list">6c</td><td class="list">4</td><td class="list">---</td><td class="list">---</td><td class="list">EN</td><td class="list">---</td><td class="list">Entfall</td><td class="list">krank</td></tr>
</table>
<a name="2">&nbsp;</a><br><br>
<p><b>26.8. Dienstag</b> | <a href="#1">[ Montag ]</a></p>
<table class="subst">
<tr class="list"><td class="list" align="center">Keine Vertretungen</td></tr>
</table>
</div>
</body>
</html>
"""


def make_record(**overrides) -> ChangeRecord:
    data = dict(
        classes=["5A"],
        day=date(2025, 9, 1),
        weekday="Montag",
        lesson="1",
        teacher="MÜL",
        subject="MA",
        original_subject="MA",
        room="101",
        change_type="Vertretung",
        note=None,
        source_page="w00001.htm",
        created_at=datetime(2025, 8, 31, 18, 0, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return ChangeRecord(**data)


@pytest_asyncio.fixture
async def store(tmp_path):
    s = EmbeddedStore(tmp_path / "entries.sqlite")
    await s.init_schema()
    yield s
    await s.close()


@pytest_asyncio.fixture
async def client(store):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_notifier] = lambda: AlertNotifier()

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as c:
        yield c

    app.dependency_overrides.clear()
