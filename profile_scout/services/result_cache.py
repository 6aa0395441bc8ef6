from __future__ import annotations

import asyncio
import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from profile_scout.models.schemas import ProfileInput


def cache_key(profile: ProfileInput) -> str:
    """Normalized serialization of a profile: case and whitespace folded, interests sorted."""
    interests = sorted({" ".join(item.lower().split()) for item in profile.interests or []})
    payload = {
        "name": " ".join(profile.name.lower().split()),
        "context": " ".join((profile.context or "").lower().split()),
        "interests": interests,
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


@dataclass(slots=True)
class CacheEntry:
    job_id: str
    result: dict[str, Any]
    touched_at: float


class ResultCache:
    """Bounded LRU of successful results with a time-to-live measured from the last read.

    Shared by every worker; all access goes through one lock so readers never see a
    half-written entry.
    """

    def __init__(
        self,
        *,
        max_entries: int = 100,
        ttl_seconds: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max(int(max_entries), 1)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.touched_at > self.ttl_seconds

    async def get(self, key: str) -> CacheEntry | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            now = self._clock()
            if self._expired(entry, now):
                del self._entries[key]
                return None
            entry.touched_at = now
            self._entries.move_to_end(key)
            return entry

    async def set(self, key: str, job_id: str, result: dict[str, Any]) -> None:
        async with self._lock:
            self._entries[key] = CacheEntry(job_id=job_id, result=result, touched_at=self._clock())
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def delete_job(self, job_id: str) -> int:
        """Drop every entry produced by ``job_id``."""
        async with self._lock:
            keys = [key for key, entry in self._entries.items() if entry.job_id == job_id]
            for key in keys:
                del self._entries[key]
            return len(keys)

    async def purge_expired(self) -> int:
        async with self._lock:
            now = self._clock()
            stale = [key for key, entry in self._entries.items() if self._expired(entry, now)]
            for key in stale:
                del self._entries[key]
            return len(stale)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
