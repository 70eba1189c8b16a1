from __future__ import annotations

import asyncio
import math
import weakref
from uuid import uuid4

from services.sheet_store import SheetStore
from shared.config import CrmConfig
from utils.timefmt import utc_now


def time_id(prefix: str) -> str:
    """Time-derived id with a random suffix, e.g. ``OPP1718000000000A1B2C3``."""
    ts_ms = int(utc_now().timestamp() * 1000)
    return f"{prefix}{ts_ms}{uuid4().hex[:6].upper()}"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class BaseWriter:
    def __init__(self, store: SheetStore, config: CrmConfig) -> None:
        self.store = store
        self.config = config
        # Entries drop out once no coroutine holds or waits on the lock.
        self._key_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _column_range(self, sheet_key: str, letter: str) -> str:
        return f"{self.config.sheets[sheet_key]}!{letter}:{letter}"

    def _key_lock(self, key: str) -> asyncio.Lock:
        """Serializes get-or-create for one natural key inside this process."""
        lock = self._key_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[key] = lock
        return lock
