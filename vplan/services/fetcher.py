from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional

import httpx
import structlog

from tenacity import (
    retry, stop_after_attempt, wait_exponential,
    retry_if_exception_type,
)
from vplan.config import settings

log = structlog.get_logger(__name__)


@dataclass
class PageResult:
    index: int
    page: str
    html: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.html is not None


def page_name(index: int) -> str:
    """``3`` → ``w00003.htm``"""
    return f"w{index:05d}.htm"


def page_url(index: int, base_url: Optional[str] = None) -> str:
    base = base_url or settings.PLAN_BASE_URL
    if not base.endswith("/"):
        base += "/"
    return base + page_name(index)


# ── Core fetch ────────────────────────────────────────────────────────────────

@retry(
    retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
    stop=stop_after_attempt(settings.MAX_RETRIES),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)
async def _fetch_one(client: httpx.AsyncClient, url: str) -> bytes:
    resp = await client.get(url, timeout=settings.HTTP_TIMEOUT)
    resp.raise_for_status()
    return resp.content


async def fetch_page(
    client: httpx.AsyncClient, index: int, base_url: Optional[str] = None
) -> PageResult:
    """One page; HTTP and transport failures come back as an empty result, never raised."""
    page = page_name(index)
    url = page_url(index, base_url)
    t0 = time.monotonic()
    try:
        body = await asyncio.wait_for(_fetch_one(client, url), timeout=settings.PAGE_DEADLINE)
    except asyncio.TimeoutError:
        error = f"deadline of {settings.PAGE_DEADLINE}s exceeded"
        log.warning("fetch.page.abandoned", page=page, error=error)
        return PageResult(index=index, page=page, error=error)
    except httpx.HTTPError as exc:
        log.warning("fetch.page.failed", page=page, error=str(exc) or type(exc).__name__)
        return PageResult(index=index, page=page, error=str(exc) or type(exc).__name__)
    ms = int((time.monotonic() - t0) * 1000)
    # the plan is published in Latin-1, not UTF-8
    html = body.decode(settings.PLAN_PAGE_ENCODING, errors="replace")
    log.debug("fetch.page.ok", page=page, bytes=len(body), ms=ms)
    return PageResult(index=index, page=page, html=html, duration_ms=ms)


async def fetch_pages(
    indices: Iterable[int],
    base_url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> List[PageResult]:
    """Fetch pages concurrently; results come back in the order of ``indices``."""
    sem = asyncio.Semaphore(settings.CONCURRENCY_LIMIT)

    async def _guarded(c: httpx.AsyncClient, index: int) -> PageResult:
        async with sem:
            return await fetch_page(c, index, base_url)

    if client is not None:
        return list(await asyncio.gather(*[_guarded(client, i) for i in indices]))

    limits = httpx.Limits(
        max_connections=settings.CONCURRENCY_LIMIT,
        max_keepalive_connections=settings.CONCURRENCY_LIMIT,
    )
    async with httpx.AsyncClient(
        limits=limits,
        headers={"User-Agent": settings.PLAN_USER_AGENT},
        follow_redirects=True,
    ) as c:
        return list(await asyncio.gather(*[_guarded(c, i) for i in indices]))
