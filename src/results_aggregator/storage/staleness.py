"""Process-wide cluster -> last accepted checked-at mapping.

The cache only short-circuits writes that are obviously stale; the
authoritative check runs inside the write transaction.
"""

from __future__ import annotations

from datetime import datetime
import threading
from typing import Iterable

from .contracts import parse_timestamp


class StalenessCache:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_checked: dict[str, datetime] = {}

    def warm(self, entries: Iterable[tuple[str, datetime | str]]) -> int:
        """Replace the mapping with the scanned (cluster, last_checked_at) rows."""
        loaded: dict[str, datetime] = {}
        for cluster, checked_at in entries:
            parsed = parse_timestamp(checked_at)
            if parsed is None:
                continue
            current = loaded.get(str(cluster))
            if current is None or parsed > current:
                loaded[str(cluster)] = parsed
        with self._lock:
            self._last_checked = loaded
        return len(loaded)

    def check(self, cluster: str, candidate: datetime) -> bool:
        """True when `candidate` is strictly newer than the cached value (or none is cached)."""
        candidate_ts = parse_timestamp(candidate)
        if candidate_ts is None:
            raise ValueError(f"checked-at timestamp required for cluster {cluster}")
        with self._lock:
            cached = self._last_checked.get(cluster)
        return cached is None or candidate_ts > cached

    def record(self, cluster: str, accepted: datetime) -> None:
        accepted_ts = parse_timestamp(accepted)
        if accepted_ts is None:
            return
        with self._lock:
            cached = self._last_checked.get(cluster)
            if cached is None or accepted_ts > cached:
                self._last_checked[cluster] = accepted_ts

    def get(self, cluster: str) -> datetime | None:
        with self._lock:
            return self._last_checked.get(cluster)

    def forget(self, clusters: Iterable[str]) -> None:
        with self._lock:
            for cluster in clusters:
                self._last_checked.pop(cluster, None)

    def clear(self) -> None:
        with self._lock:
            self._last_checked.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_checked)
