from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from services.sheet_store import FIRST_DATA_ROW, SheetStore
from shared.config import CrmConfig
from utils.timefmt import first_timestamp_ms

logger = logging.getLogger(__name__)

RowParser = Callable[[Sequence[str], int], Dict[str, Any]]
SortKey = Callable[[Dict[str, Any]], Any]


def cell(row: Sequence[str], index: int) -> str:
    """Value at ``index`` or ``""`` when the row is shorter (trailing blanks are not returned by the store)."""
    if index < len(row):
        value = row[index]
        return "" if value is None else str(value)
    return ""


def newest_first(*fields: str) -> Tuple[SortKey, bool]:
    """
    Sort key ordering records by the first populated timestamp field, newest first.
    Records whose timestamp cannot be parsed sort after all dated records.
    """

    def key(item: Dict[str, Any]) -> Tuple[int, int]:
        ts = first_timestamp_ms(*(item.get(name) for name in fields))
        if ts is None:
            return (0, 0)
        return (1, ts)

    return key, True


class ReadCache:
    """
    Key -> parsed rows, with no expiry. Entries live until invalidated.
    At most one fetch per key is in flight; a fetch that started before an
    invalidation of its key never stores its result.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, List[Dict[str, Any]]] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._generations: Dict[str, int] = {}

    def get(self, key: str) -> Optional[List[Dict[str, Any]]]:
        return self._entries.get(key)

    def generation(self, key: str) -> int:
        return self._generations.get(key, 0)

    def store(self, key: str, generation: int, rows: List[Dict[str, Any]]) -> None:
        if self.generation(key) == generation:
            self._entries[key] = rows

    def in_flight(self, key: str) -> Optional[asyncio.Task]:
        return self._in_flight.get(key)

    def track(self, key: str, task: asyncio.Task) -> None:
        self._in_flight[key] = task

        def _done(finished: asyncio.Task) -> None:
            if self._in_flight.get(key) is finished:
                del self._in_flight[key]

        task.add_done_callback(_done)

    def invalidate(self, key: Optional[str] = None) -> None:
        keys = [key] if key else list(set(self._entries) | set(self._in_flight) | set(self._generations))
        for name in keys:
            self._entries.pop(name, None)
            self._in_flight.pop(name, None)
            self._generations[name] = self.generation(name) + 1


class BaseReader:
    def __init__(self, store: SheetStore, config: CrmConfig, cache: ReadCache) -> None:
        self.store = store
        self.config = config
        self.cache = cache

    def invalidate_cache(self, cache_key: Optional[str] = None) -> None:
        self.cache.invalidate(cache_key)
        logger.debug("Cache invalidated: %s", cache_key or "<all>")

    async def _fetch_and_cache(
        self,
        cache_key: str,
        range_name: str,
        row_parser: RowParser,
        sort_key: Optional[SortKey] = None,
        reverse: bool = False,
    ) -> List[Dict[str, Any]]:
        cached = self.cache.get(cache_key)
        if cached is not None:
            return list(cached)

        task = self.cache.in_flight(cache_key)
        if task is None:
            generation = self.cache.generation(cache_key)
            task = asyncio.ensure_future(
                self._load(cache_key, generation, range_name, row_parser, sort_key, reverse)
            )
            self.cache.track(cache_key, task)
        # shield: a cancelled waiter must not cancel the fetch other waiters share.
        rows = await asyncio.shield(task)
        return list(rows)

    async def _load(
        self,
        cache_key: str,
        generation: int,
        range_name: str,
        row_parser: RowParser,
        sort_key: Optional[SortKey],
        reverse: bool,
    ) -> List[Dict[str, Any]]:
        raw_rows = await self.store.get_values(range_name)
        parsed = [row_parser(row.values, row.row_index) for row in raw_rows if row.row_index >= FIRST_DATA_ROW]
        if sort_key is not None:
            parsed.sort(key=sort_key, reverse=reverse)
        self.cache.store(cache_key, generation, parsed)
        logger.info("Loaded %s rows for cache key '%s' from %s", len(parsed), cache_key, range_name)
        return parsed


def paginate(items: List[Dict[str, Any]], page: int, page_size: int):
    """page <= 0 returns the full list; otherwise a page envelope."""
    if not page or page <= 0:
        return items
    start = (page - 1) * page_size
    total_items = len(items)
    return {
        "data": items[start : start + page_size],
        "pagination": {
            "current": page,
            "total": (total_items + page_size - 1) // page_size,
            "totalItems": total_items,
            "hasNext": start + page_size < total_items,
            "hasPrev": page > 1,
        },
    }
