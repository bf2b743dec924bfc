import pytest

from vplan.cache import build_key, cache_get, cache_set, invalidate_pattern


def test_build_key_deterministic():
    assert build_key("stats") == build_key("stats")


def test_build_key_prefix():
    assert build_key("classes").startswith("vplan:v1:")


def test_build_key_different_inputs():
    assert build_key("classes") != build_key("stats")


@pytest.mark.asyncio
async def test_disabled_cache_always_misses():
    await cache_set(build_key("stats"), {"totalEntries": 1}, ttl=60)
    assert await cache_get(build_key("stats")) == (None, False)
    assert await invalidate_pattern() == 0
