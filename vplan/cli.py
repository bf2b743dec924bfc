"""
Command line entry point.

    vplan scrape [--from N] [--to N]   one ingestion run, exit 1 on failure
    vplan maintenance                  scrape only if the data is due
    vplan serve [--host H] [--port P]  run the HTTP API
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from vplan.cache import close_redis_pool, init_redis_pool
from vplan.database import close_store, init_store
from vplan.logconfig import configure_logging

log = structlog.get_logger(__name__)


async def _scrape(page_from: int, page_to: Optional[int]) -> int:
    from vplan.services.alerts import get_notifier
    from vplan.services.ingest import run_scrape

    store = await init_store()
    await init_redis_pool()
    try:
        result = await run_scrape(store, get_notifier(), page_from, page_to, triggered_by="cli")
    except Exception as exc:
        log.error("cli.scrape.failed", error=str(exc))
        return 1
    finally:
        await close_redis_pool()
        await close_store()
    log.info(
        "cli.scrape.done",
        parsed=result.parsed,
        inserted=result.inserted,
        pages=result.pages_fetched,
        duration_ms=result.duration_ms,
    )
    return 0


async def _maintenance() -> int:
    from vplan.services.scheduler import run_if_due

    await init_store()
    await init_redis_pool()
    try:
        outcome = await run_if_due(triggered_by="cli")
    finally:
        await close_redis_pool()
        await close_store()
    return 1 if outcome is False else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vplan", description="Vertretungsplan tracker")
    sub = parser.add_subparsers(dest="command", required=True)

    scrape = sub.add_parser("scrape", help="Fetch all plan pages and store new entries")
    scrape.add_argument("--from", dest="page_from", type=int, default=1, help="First page index")
    scrape.add_argument("--to", dest="page_to", type=int, default=None, help="Last page index")

    sub.add_parser("maintenance", help="Scrape only if the last success is older than the interval")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=3001)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    if args.command == "serve":
        import uvicorn
        uvicorn.run("vplan.main:app", host=args.host, port=args.port)
        return 0
    if args.command == "scrape":
        return asyncio.run(_scrape(args.page_from, args.page_to))
    return asyncio.run(_maintenance())


if __name__ == "__main__":
    sys.exit(main())
