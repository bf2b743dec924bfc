from __future__ import annotations
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from vplan.cache import build_key, cache_get, cache_set
from vplan.config import settings
from vplan.database import get_store
from vplan.schemas import (
    ClassesResponse, EntriesPage, EntryQuery,
    FetchLogResponse, Stats,
)
from vplan.storage.base import PlanStore

router = APIRouter(prefix="/api", tags=["plan"])


@router.get("/entries", response_model=EntriesPage)
async def list_entries(
    day: Optional[date] = Query(None),
    class_name: Optional[str] = Query(None, alias="class"),
    limit: Optional[int] = Query(None),
    offset: Optional[int] = Query(None),
    sort: Literal["asc", "desc"] = Query("asc"),
    store: PlanStore = Depends(get_store),
):
    q = EntryQuery(
        day=day,
        class_substring=class_name,
        limit=limit if limit is not None else 500,
        offset=offset if offset is not None else 0,
        sort=sort,
    )
    entries, total = await store.query(q)
    return EntriesPage(entries=entries, total=total, limit=q.limit, offset=q.offset)


@router.get("/classes", response_model=ClassesResponse)
async def list_classes(store: PlanStore = Depends(get_store)):
    cache_key = build_key("classes")
    value, is_stale = await cache_get(cache_key)
    if value and not is_stale:
        return ClassesResponse(**value)

    result = ClassesResponse(classes=await store.distinct_classes())
    await cache_set(cache_key, result.model_dump(), settings.CACHE_TTL_WARM)
    return result


@router.get("/stats", response_model=Stats)
async def stats(store: PlanStore = Depends(get_store)):
    cache_key = build_key("stats")
    value, is_stale = await cache_get(cache_key)
    if value and not is_stale:
        return Stats(**value)

    result = await store.stats()
    await cache_set(cache_key, result.model_dump(), settings.CACHE_TTL_WARM)
    return result


@router.get("/fetch-log", response_model=FetchLogResponse)
async def fetch_log(
    limit: int = Query(50, ge=1, le=500),
    store: PlanStore = Depends(get_store),
):
    return FetchLogResponse(log=await store.recent_fetches(limit))
