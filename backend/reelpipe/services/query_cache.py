"""
Keyed client-side query cache

Entries are filled only by their fetchers. Invalidation marks matching keys
stale and refetches the ones something is currently observing; it never
writes values on behalf of a mutation.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[Any, ...]
Fetcher = Callable[[], Awaitable[Any]]


def video_list_key(project_id: str, status: Optional[str] = None) -> CacheKey:
    return ("videos", "list", project_id, status)


def video_list_prefix(project_id: str) -> CacheKey:
    return ("videos", "list", project_id)


def video_detail_key(video_id: str) -> CacheKey:
    return ("videos", "detail", video_id)


def project_detail_key(project_id: str) -> CacheKey:
    return ("projects", "detail", project_id)


PROJECT_LIST_KEY: CacheKey = ("projects", "list")


@dataclass
class CacheEntry:
    data: Any = None
    stale: bool = True
    fetched: bool = False
    error: Optional[BaseException] = None
    fetcher: Optional[Fetcher] = None
    observers: int = 0


class QueryCache:
    def __init__(self):
        self.entries: Dict[CacheKey, CacheEntry] = {}
        self._tasks: Set["asyncio.Task[None]"] = set()
        self._inflight: Dict[CacheKey, "asyncio.Task[None]"] = {}
        self._queued: Set[CacheKey] = set()

    def observe(self, key: CacheKey, fetcher: Fetcher) -> CacheEntry:
        """Register interest in a key; the first observer triggers a fetch"""
        entry = self.entries.setdefault(key, CacheEntry())
        entry.fetcher = fetcher
        entry.observers += 1
        if entry.stale:
            self._schedule(key)
        return entry

    def unobserve(self, key: CacheKey) -> None:
        entry = self.entries.get(key)
        if entry and entry.observers > 0:
            entry.observers -= 1

    def get(self, key: CacheKey) -> Any:
        entry = self.entries.get(key)
        return entry.data if entry else None

    def is_stale(self, key: CacheKey) -> bool:
        entry = self.entries.get(key)
        return entry is None or entry.stale

    def invalidate(self, prefix: CacheKey) -> int:
        """Mark keys starting with `prefix` stale; refetch the observed ones"""
        count = 0
        for key, entry in self.entries.items():
            if key[:len(prefix)] != prefix:
                continue
            entry.stale = True
            count += 1
            if entry.observers > 0 and entry.fetcher is not None:
                self._schedule(key)
        logger.debug(f"Invalidated {count} cache entries under {prefix}")
        return count

    async def refresh(self, key: CacheKey) -> None:
        self._queued.discard(key)
        entry = self.entries.get(key)
        if entry is None or entry.fetcher is None:
            return
        try:
            entry.data = await entry.fetcher()
            entry.stale = False
            entry.fetched = True
            entry.error = None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Stays stale until the next poll tick or mutation
            entry.error = e
            logger.warning(f"Refetch of {key} failed: {e}")

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()
        self._inflight.clear()
        self._queued.clear()

    def _schedule(self, key: CacheKey) -> None:
        if key in self._queued:
            # A refetch that has not started yet already covers this invalidation
            return
        self._queued.add(key)
        current = self._inflight.get(key)
        if current is not None and not current.done():
            # A fetch already running may have read pre-mutation data; queue one more after it
            async def _after(previous=current):
                await asyncio.gather(previous, return_exceptions=True)
                await self.refresh(key)
            coro = _after()
        else:
            coro = self.refresh(key)
        task = asyncio.create_task(coro)
        self._inflight[key] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
