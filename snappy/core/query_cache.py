"""Versioned in-memory query cache with staleness, deduplicated fetches and undo snapshots."""

import asyncio
import copy
import logging
import time
from collections.abc import Awaitable, Callable, Hashable, Mapping
from dataclasses import dataclass, field
from typing import Any

from snappy.core.config import settings


logger = logging.getLogger(__name__)


QueryKey = tuple[Hashable, ...]
Fetcher = Callable[[], Awaitable[Any]]


def make_query_key(entity: str, filters: Mapping[str, Any] | None = None) -> QueryKey:
    """Build a normalized query key: entity name plus sorted, non-None filters."""
    if not filters:
        return (entity,)
    normalized = tuple(sorted((name, value) for name, value in filters.items() if value is not None))
    return (entity, normalized) if normalized else (entity,)


def key_filters(key: QueryKey) -> dict[str, Any]:
    """Recover the filter mapping from a key built by make_query_key."""
    if len(key) < 2 or not isinstance(key[1], tuple):  # noqa: PLR2004
        return {}
    return dict(key[1])


def matches_prefix(key: QueryKey, prefix: QueryKey) -> bool:
    return key[: len(prefix)] == prefix


@dataclass
class CacheEntry:
    """Cached value for one query key."""

    data: Any = None
    has_data: bool = False
    version: int = 0
    updated_at: float = 0.0
    is_invalidated: bool = False
    fetch_task: asyncio.Task[Any] | None = None


@dataclass(frozen=True)
class CacheSnapshot:
    """Pre-mutation state of one key."""

    existed: bool
    data: Any
    version: int


@dataclass
class UndoEntry:
    """Snapshots of every key touched by one in-flight mutation."""

    prefix: QueryKey
    snapshots: dict[QueryKey, CacheSnapshot] = field(default_factory=dict)

    @property
    def keys(self) -> list[QueryKey]:
        return list(self.snapshots)

    @property
    def existing_keys(self) -> list[QueryKey]:
        return [key for key, snap in self.snapshots.items() if snap.existed]


class QueryCache:
    """Query-keyed cache of server entities.

    Writes bump a per-key version. Entries become stale when invalidated or
    older than `stale_seconds`; stale entries are refetched on the next read,
    with at most one fetch in flight per key.
    """

    def __init__(self, stale_seconds: float | None = None) -> None:
        self.stale_seconds = settings.query_stale_seconds if stale_seconds is None else stale_seconds
        self._entries: dict[QueryKey, CacheEntry] = {}

    def get_query_data(self, key: QueryKey) -> Any:
        entry = self._entries.get(key)
        return entry.data if entry and entry.has_data else None

    def set_query_data(self, key: QueryKey, value: Any) -> Any:
        """Write a value, or apply an updater callable to the current value."""
        entry = self._entries.setdefault(key, CacheEntry())
        new_value = value(entry.data if entry.has_data else None) if callable(value) else value
        self._write(entry, new_value)
        return new_value

    def _write(self, entry: CacheEntry, value: Any) -> None:
        entry.data = value
        entry.has_data = True
        entry.version += 1
        entry.updated_at = time.monotonic()
        entry.is_invalidated = False

    def get_version(self, key: QueryKey) -> int:
        entry = self._entries.get(key)
        return entry.version if entry else 0

    def find_keys(self, prefix: QueryKey) -> list[QueryKey]:
        return [key for key in self._entries if matches_prefix(key, prefix)]

    def is_stale(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        if entry is None or not entry.has_data or entry.is_invalidated:
            return True
        return time.monotonic() - entry.updated_at >= self.stale_seconds

    def is_fetching(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.fetch_task is not None

    def invalidate_queries(self, prefix: QueryKey) -> list[QueryKey]:
        """Mark every matching key stale so its next read refetches."""
        keys = self.find_keys(prefix)
        for key in keys:
            self._entries[key].is_invalidated = True
        logger.debug("Invalidated queries", extra={"prefix": prefix, "count": len(keys)})
        return keys

    async def cancel_queries(self, prefix: QueryKey) -> None:
        """Cancel in-flight fetches for matching keys and wait until they stop."""
        tasks = []
        for key in self.find_keys(prefix):
            task = self._entries[key].fetch_task
            if task is not None and not task.done():
                task.cancel()
                tasks.append(task)

        if tasks:
            await asyncio.wait(tasks)
            logger.debug("Cancelled in-flight fetches", extra={"prefix": prefix, "count": len(tasks)})

    async def fetch_query(self, key: QueryKey, fetcher: Fetcher, *, force: bool = False) -> Any:
        """Return fresh data for the key, fetching it when stale.

        Concurrent callers share one fetch. If that fetch is cancelled by
        cancel_queries(), callers receive whatever is cached at that point.
        """
        entry = self._entries.setdefault(key, CacheEntry())
        if not force and entry.fetch_task is None and not self.is_stale(key):
            return entry.data

        task = self._start_fetch(key, entry, fetcher)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if (current is not None and current.cancelling()) or not task.cancelled():
                raise
            if not entry.has_data:
                raise
            return entry.data

    async def read_query(self, key: QueryKey, fetcher: Fetcher) -> Any:
        """Stale-while-revalidate read.

        With no cached data the fetch is awaited. With stale data the cached
        value is returned immediately and a background refetch is started.
        """
        entry = self._entries.get(key)
        if entry is None or not entry.has_data:
            return await self.fetch_query(key, fetcher)
        if self.is_stale(key):
            self._start_fetch(key, entry, fetcher)
        return entry.data

    def _start_fetch(self, key: QueryKey, entry: CacheEntry, fetcher: Fetcher) -> asyncio.Task[Any]:
        if entry.fetch_task is not None:
            return entry.fetch_task

        task = asyncio.create_task(self._run_fetch(key, entry, fetcher))
        task.add_done_callback(_log_fetch_failure)
        entry.fetch_task = task
        return task

    async def _run_fetch(self, key: QueryKey, entry: CacheEntry, fetcher: Fetcher) -> Any:
        try:
            data = await fetcher()
            self._write(entry, data)
            logger.debug("Fetched query", extra={"query_key": key, "version": entry.version})
            return data
        finally:
            if entry.fetch_task is asyncio.current_task():
                entry.fetch_task = None

    async def wait_for_fetches(self) -> None:
        """Wait for every in-flight fetch to finish, ignoring their outcome."""
        tasks = [entry.fetch_task for entry in self._entries.values() if entry.fetch_task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def snapshot(self, prefix: QueryKey, *, include_missing: bool = False) -> UndoEntry:
        """Capture the current state of every key matching the prefix.

        With include_missing, an unmatched prefix is recorded as a missing key
        so an optimistic write that creates it can be undone.
        """
        undo = UndoEntry(prefix=prefix)
        keys = self.find_keys(prefix)
        if not keys and include_missing:
            keys = [prefix]
        for key in keys:
            entry = self._entries.get(key)
            if entry is None or not entry.has_data:
                undo.snapshots[key] = CacheSnapshot(existed=False, data=None, version=self.get_version(key))
            else:
                undo.snapshots[key] = CacheSnapshot(
                    existed=True, data=copy.deepcopy(entry.data), version=entry.version
                )
        return undo

    def restore(self, undo: UndoEntry) -> None:
        """Put every key recorded in the undo entry back to its snapshot value."""
        for key, snap in undo.snapshots.items():
            entry = self._entries.get(key)
            if not snap.existed:
                if entry is not None:
                    entry.data = None
                    entry.has_data = False
                    entry.version += 1
                continue
            if entry is None:
                entry = self._entries.setdefault(key, CacheEntry())
            self._write(entry, snap.data)
        logger.debug("Restored snapshot", extra={"prefix": undo.prefix, "keys": len(undo.snapshots)})

    def remove_queries(self, prefix: QueryKey) -> None:
        for key in self.find_keys(prefix):
            entry = self._entries.pop(key)
            if entry.fetch_task is not None:
                entry.fetch_task.cancel()

    def clear(self) -> None:
        for entry in self._entries.values():
            if entry.fetch_task is not None:
                entry.fetch_task.cancel()
        self._entries.clear()


def _log_fetch_failure(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning("Query fetch failed", extra={"error": str(error), "error_type": type(error).__name__})
