"""Recent scan history, most-recent-first and bounded in size."""

from __future__ import annotations

import json
import logging
import time
from typing import Callable, List, Optional, Tuple

from ..errors import IndexOutOfRangeError
from ..records import MedicineRecord
from .storage import LocalStore

logger = logging.getLogger(__name__)

HISTORY_KEY = "medicineHistory"
HISTORY_CAPACITY = 5


def now_ms() -> int:
    return int(time.time() * 1000)


class RecentHistoryCache:
    """Persisted log of the last few identification results.

    The slot always holds the whole log; it is rewritten in full on every
    insertion and parsed as one blob on load.
    """

    def __init__(
        self,
        store: Optional[LocalStore] = None,
        key: str = HISTORY_KEY,
        capacity: int = HISTORY_CAPACITY,
        now: Callable[[], int] = now_ms,
    ):
        self.store = store or LocalStore()
        self.key = key
        self.capacity = capacity
        self._now = now
        # None until the slot has been read
        self._entries: Optional[List[MedicineRecord]] = None

    def _current(self) -> List[MedicineRecord]:
        if self._entries is None:
            self.load()
        return self._entries

    @property
    def entries(self) -> Tuple[MedicineRecord, ...]:
        return tuple(self._current())

    def __len__(self) -> int:
        return len(self._current())

    def load(self) -> Tuple[MedicineRecord, ...]:
        """Read the persisted log; a missing or malformed slot gives an empty log."""
        self._entries = []
        raw = self.store.get_item(self.key)
        if raw is None:
            return self.entries

        try:
            data = json.loads(raw)
            if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
                raise ValueError(f"expected a list of objects, got {type(data).__name__}")
        except ValueError as e:
            logger.error(f"Failed to parse history: {e}")
            return self.entries

        self._entries = [MedicineRecord.from_dict(item) for item in data[: self.capacity]]
        logger.debug(f"Loaded {len(self._entries)} history entries")
        return self.entries

    def record(self, entry: MedicineRecord) -> Tuple[MedicineRecord, ...]:
        """
        Stamp the capture time, insert at the head and persist the log.

        Args:
            entry: Result returned by the identification client

        Returns:
            The new log, most recent first
        """
        stamped = entry.with_captured_at(self._now())
        log = [stamped] + self._current()[: self.capacity - 1]
        self.store.set_item(self.key, json.dumps([e.to_dict() for e in log]))
        self._entries = log
        logger.info(f"Recorded '{stamped.medicine_name}' in history ({len(self._entries)}/{self.capacity})")
        return self.entries

    def select(self, index: int) -> MedicineRecord:
        entries = self._current()
        if not 0 <= index < len(entries):
            raise IndexOutOfRangeError(f"No history entry at position {index} (have {len(entries)})")
        return entries[index]
