"""Tests for the LRU + TTL result cache."""
import asyncio

import pytest

from profile_scout.models.schemas import ProfileInput
from profile_scout.services.result_cache import ResultCache, cache_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_cache_key_normalizes_profile():
    a = ProfileInput(name="Alice  Smith", context="Acme Corp", interests=["Rust", "python"])
    b = ProfileInput(name="alice smith", context=" acme   corp ", interests=["python", "rust"])
    c = ProfileInput(name="Alice Smith", context="Globex")
    assert cache_key(a) == cache_key(b)
    assert cache_key(a) != cache_key(c)


@pytest.mark.asyncio
async def test_least_recently_used_entry_is_evicted():
    cache = ResultCache(max_entries=2)
    await cache.set("a", "job-a", {"v": 1})
    await cache.set("b", "job-b", {"v": 2})
    await cache.get("a")
    await cache.set("c", "job-c", {"v": 3})

    assert await cache.get("b") is None
    assert (await cache.get("a")).result == {"v": 1}
    assert (await cache.get("c")).job_id == "job-c"


@pytest.mark.asyncio
async def test_reads_refresh_the_time_to_live():
    clock = FakeClock()
    cache = ResultCache(ttl_seconds=10, clock=clock)
    await cache.set("a", "job-a", {"v": 1})

    clock.now += 8
    assert await cache.get("a") is not None
    clock.now += 8
    assert await cache.get("a") is not None
    clock.now += 11
    assert await cache.get("a") is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_purge_expired_and_delete_job():
    clock = FakeClock()
    cache = ResultCache(ttl_seconds=10, clock=clock)
    await cache.set("old", "job-1", {})
    clock.now += 5
    await cache.set("fresh", "job-2", {})
    await cache.set("fresh-too", "job-2", {})
    clock.now += 6

    assert await cache.purge_expired() == 1
    assert await cache.delete_job("job-2") == 2
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_concurrent_writers_leave_whole_entries():
    cache = ResultCache(max_entries=5)
    await asyncio.gather(*(cache.set(f"k{i}", f"job-{i}", {"i": i}) for i in range(20)))

    assert len(cache) == 5
    for i in range(15, 20):
        entry = await cache.get(f"k{i}")
        assert entry.result == {"i": i}
