import asyncio

import httpx
import pytest

from vplan.config import settings
from vplan.services.fetcher import fetch_page, fetch_pages, page_name, page_url

BASE = "https://plan.example/w/"


def test_page_name_is_zero_padded():
    assert page_name(1) == "w00001.htm"
    assert page_name(42) == "w00042.htm"


def test_page_url_appends_to_base():
    assert page_url(7, "https://plan.example/w") == "https://plan.example/w/w00007.htm"
    assert page_url(7, BASE) == "https://plan.example/w/w00007.htm"


@pytest.mark.asyncio
async def test_body_decoded_as_latin1():
    def handler(request):
        return httpx.Response(200, content="<b>Müller</b>".encode("iso-8859-1"))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await fetch_page(client, 1, BASE)

    assert result.ok
    assert result.page == "w00001.htm"
    assert result.html == "<b>Müller</b>"


@pytest.mark.asyncio
async def test_failed_pages_are_skipped_not_raised():
    seen = []

    def handler(request):
        seen.append(request.url.path)
        if request.url.path.endswith("w00002.htm"):
            return httpx.Response(404)
        if request.url.path.endswith("w00003.htm"):
            raise httpx.ReadError("connection reset", request=request)
        return httpx.Response(200, content=b"<html></html>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        results = await fetch_pages([1, 2, 3, 4], base_url=BASE, client=client)

    assert [r.index for r in results] == [1, 2, 3, 4]
    assert [r.ok for r in results] == [True, False, False, True]
    assert "404" in results[1].error
    assert results[2].error
    assert sorted(seen) == [
        "/w/w00001.htm", "/w/w00002.htm", "/w/w00003.htm", "/w/w00004.htm",
    ]


@pytest.mark.asyncio
async def test_slow_page_is_abandoned_at_deadline(monkeypatch):
    monkeypatch.setattr(settings, "PAGE_DEADLINE", 0.05)

    async def trickle(request):
        await asyncio.sleep(1)
        return httpx.Response(200, content=b"late")

    async with httpx.AsyncClient(transport=httpx.MockTransport(trickle)) as client:
        result = await fetch_page(client, 3, BASE)

    assert not result.ok
    assert result.page == "w00003.htm"
    assert "deadline" in result.error
