"""In-memory window store with TTL eviction.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, and no operation awaits
  while holding it.
- Records are kept serialized, like a real key-value store, so malformed
  payloads behave the same way as with Redis.
- Expired keys are dropped on write in deadline order, so a write never
  scans the whole store.
"""

from __future__ import annotations

import heapq
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from zebra_crossing.adapters.rate_limit.base import AbstractWindowStore, WindowState
from zebra_crossing.adapters.rate_limit.fixed_window import wall_clock_ms
from zebra_crossing.core.errors import InvalidConfigurationError, MalformedRecordError

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    raw: str
    deadline_ms: int


class InMemoryWindowStore(AbstractWindowStore):
    """Process-local store for window records.

    Attributes:
        max_entries: Upper bound on stored keys (None for unlimited). When
            full, the least recently written live key is evicted.
    """

    def __init__(
        self,
        *,
        max_entries: int | None = 100_000,
        clock: Callable[[], int] = wall_clock_ms,
    ) -> None:
        """Initialize the store.

        Args:
            max_entries: Maximum number of stored keys, or None.
            clock: Time source returning UNIX time in milliseconds.

        Raises:
            InvalidConfigurationError: If max_entries is not positive.
        """
        if max_entries is not None and max_entries < 1:
            raise InvalidConfigurationError(
                code="invalid_configuration",
                message="max_entries must be >= 1",
                details={"field": "max_entries", "actual_value": max_entries},
            )

        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        # (deadline_ms, key) min-heap; items go stale when a key is rewritten
        self._deadlines: list[tuple[int, str]] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_live(self, entry: _Entry, now_ms: int) -> bool:
        return now_ms <= entry.deadline_ms

    def _purge_expired(self, now_ms: int) -> None:
        while self._deadlines and self._deadlines[0][0] < now_ms:
            deadline, key = heapq.heappop(self._deadlines)
            entry = self._entries.get(key)
            if entry is not None and entry.deadline_ms == deadline:
                del self._entries[key]

    def _track_deadline(self, key: str, deadline_ms: int) -> None:
        heapq.heappush(self._deadlines, (deadline_ms, key))
        if len(self._deadlines) > 2 * len(self._entries) + 64:
            self._deadlines = [(e.deadline_ms, k) for k, e in self._entries.items()]
            heapq.heapify(self._deadlines)

    def _make_room(self) -> None:
        if self._max_entries is None:
            return
        while len(self._entries) >= self._max_entries:
            self._entries.popitem(last=False)
            logger.debug("window_store.evicted", extra={"reason": "capacity"})

    async def get(self, key: str) -> WindowState | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not self._is_live(entry, now):
                del self._entries[key]
                return None
            raw = entry.raw

        try:
            return WindowState.from_json(raw)
        except MalformedRecordError as exc:
            logger.warning("window_store.malformed_record", extra={"error_message": exc.message})
            return None

    async def set(
        self,
        key: str,
        state: WindowState,
        ttl_ms: int,
        *,
        keep_ttl: bool = False,
    ) -> None:
        now = self._clock()
        raw = state.to_json()
        with self._lock:
            self._purge_expired(now)
            existing = self._entries.pop(key, None)
            if keep_ttl and existing is not None and self._is_live(existing, now):
                deadline = existing.deadline_ms
            else:
                deadline = now + max(0, ttl_ms)
            self._make_room()
            self._entries[key] = _Entry(raw=raw, deadline_ms=deadline)
            if existing is None or existing.deadline_ms != deadline:
                self._track_deadline(key, deadline)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()
            self._deadlines.clear()
