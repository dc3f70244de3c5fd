"""In-memory fleet snapshot with explicit state transitions.

The snapshot changes in exactly two ways:
- replace whole: a finished reload publishes a new row sequence
- patch one: a successful lock/unlock updates a single row by key

Both run under one lock, so readers never observe a half-applied change.
"""

from __future__ import annotations

import dataclasses
import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..data.models import EnrichedUser, UserKey, UserStatus


def _log(msg: str) -> None:
    """Print with flush for reliable output from worker threads."""
    print(msg, flush=True)


def filter_users(users: Iterable[EnrichedUser], term: str) -> List[EnrichedUser]:
    """Rows whose username or server name contains `term`, case-insensitively."""
    needle = (term or "").lower()
    if not needle:
        return list(users)
    return [
        u for u in users
        if needle in u.username.lower() or needle in u.server_name.lower()
    ]


class FleetState:
    """Holds the fleet snapshot, the loading flag and the banner error.

    Every reload takes a generation number when it starts. Only the newest
    generation may publish; a slower, older reload that finishes later is
    discarded. Patches applied while a reload is in flight are replayed onto
    that reload's rows when it publishes.
    """

    def __init__(self):
        self._rows: Tuple[EnrichedUser, ...] = ()
        self._index: Dict[UserKey, int] = {}
        self._error: Optional[str] = None
        self._generation = 0
        self._published_generation = 0
        self._in_flight = 0
        self._last_refresh_ts: Optional[float] = None
        # (generation that was current when applied, key, status)
        self._patch_log: List[Tuple[int, UserKey, UserStatus]] = []
        self._lock = threading.Lock()

    # --- Reload transitions ---

    def begin_reload(self) -> int:
        """Start a reload and return its generation."""
        with self._lock:
            self._generation += 1
            self._in_flight += 1
            self._error = None
            return self._generation

    def publish(self, generation: int, rows: Sequence[EnrichedUser]) -> bool:
        """Replace the whole snapshot with `rows` unless a newer reload started.

        Returns:
            True if the rows were published, False if they were stale.
        """
        with self._lock:
            self._in_flight = max(0, self._in_flight - 1)
            if generation != self._generation:
                _log(
                    f"[fleet-state] Discarding stale reload "
                    f"(generation {generation}, current {self._generation})"
                )
                return False

            new_rows = list(_unique_rows(rows))
            index = {u.key: i for i, u in enumerate(new_rows)}
            # Acknowledged mutations applied after this reload began may not
            # be reflected in what it fetched.
            for applied_in, key, status in self._patch_log:
                if applied_in >= generation and key in index:
                    i = index[key]
                    if new_rows[i].status is not status:
                        new_rows[i] = dataclasses.replace(new_rows[i], status=status)
            self._patch_log = []

            self._rows = tuple(new_rows)
            self._index = index
            self._published_generation = generation
            self._last_refresh_ts = time.time()
            return True

    def fail_reload(self, generation: int, error: str) -> None:
        """End a reload that could not load the directory.

        The snapshot is left as it was; the error becomes the banner unless a
        newer reload has already started.
        """
        with self._lock:
            self._in_flight = max(0, self._in_flight - 1)
            if generation == self._generation:
                self._error = error
            if not self._in_flight:
                self._patch_log = []

    # --- Patch transition ---

    def patch_status(self, key: UserKey, status: UserStatus) -> bool:
        """Set one row's status in place. Returns False if the key is absent."""
        with self._lock:
            if self._in_flight:
                self._patch_log.append((self._generation, key, status))
            i = self._index.get(key)
            if i is None:
                return False
            current = self._rows[i]
            if current.status is not status:
                rows = list(self._rows)
                rows[i] = dataclasses.replace(current, status=status)
                self._rows = tuple(rows)
            return True

    # --- Reads ---

    def rows(self) -> Tuple[EnrichedUser, ...]:
        with self._lock:
            return self._rows

    def find(self, key: UserKey) -> Optional[EnrichedUser]:
        with self._lock:
            i = self._index.get(key)
            return self._rows[i] if i is not None else None

    def search(self, term: str) -> List[EnrichedUser]:
        return filter_users(self.rows(), term)

    @property
    def loading(self) -> bool:
        with self._lock:
            return self._in_flight > 0

    @property
    def error(self) -> Optional[str]:
        with self._lock:
            return self._error

    @property
    def generation(self) -> int:
        with self._lock:
            return self._published_generation

    def get_status(self) -> Dict[str, Any]:
        """Snapshot metadata for API responses."""
        with self._lock:
            return self._status()

    def view(self, term: str = "") -> Tuple[Dict[str, Any], List[EnrichedUser]]:
        """Metadata and matching rows taken from the same snapshot."""
        with self._lock:
            status = self._status()
            rows = self._rows
        return status, filter_users(rows, term)

    def _status(self) -> Dict[str, Any]:
        return {
            "loading": self._in_flight > 0,
            "error": self._error,
            "generation": self._published_generation,
            "total": len(self._rows),
            "last_refresh_epoch": self._last_refresh_ts,
        }


def _unique_rows(rows: Iterable[EnrichedUser]) -> Iterable[EnrichedUser]:
    seen = set()
    for row in rows:
        if row.key in seen:
            _log(f"[fleet-state] Dropping duplicate row {row.server_id}/{row.username}")
            continue
        seen.add(row.key)
        yield row
